"""jnigen: JNI glue generator for annotated Java native declarations."""

__version__ = "0.4.0"
