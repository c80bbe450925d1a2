"""Pipeline orchestration: one independent generation run per target."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .config import ConfigError, JnigenConfig
from .emitters import NativesEmitter, StatsEmitter, StructsEmitter, create_environment, stats_file_names
from .errors import GenerationError
from .logging import get_logger, log_warnings
from .models import GeneratedFile, GenerationTarget, GenerationWarning, SourceModel
from .outputs import FileResult, OutputLock, OutputWriter
from .source import SourceModelBuilder, SourceScanner
from .stores import MetadataStore, StatsTable
from .typemap import MappingRule, TypeMappingEngine, discover_rules


class TargetState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    MODELING = "modeling"
    MAPPING = "mapping"
    EMITTING = "emitting"
    DIFFING = "diffing"
    WRITTEN = "written"
    FAILED = "failed"


@dataclass
class TargetOutcome:
    """Result of one target's pipeline run."""

    target: GenerationTarget
    state: TargetState = TargetState.IDLE
    history: List[TargetState] = field(default_factory=list)
    files: List[FileResult] = field(default_factory=list)
    warnings: List[GenerationWarning] = field(default_factory=list)
    error: Optional[BaseException] = None

    def advance(self, state: TargetState) -> None:
        self.history.append(self.state)
        self.state = state

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.advance(TargetState.FAILED)

    @property
    def ok(self) -> bool:
        return self.state is TargetState.WRITTEN

    @property
    def changed(self) -> List[FileResult]:
        return [result for result in self.files if result.changed]


class Orchestrator:
    """Coordinates loading, modeling, mapping, emitting and diffing per target.

    Targets share only the read-only metadata stores; a failure in one target
    never rolls back or stops the others.
    """

    def __init__(
        self,
        config: Optional[JnigenConfig] = None,
        *,
        rules: Optional[Iterable[MappingRule]] = None,
        check: bool = False,
        dry_run: bool = False,
        jobs: Optional[int] = None,
        templates_dir: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.rules = list(rules) if rules is not None else discover_rules()
        self.check = check
        self.dry_run = dry_run
        self.jobs = jobs or (config.jobs if config else 1)
        self.templates_dir = templates_dir
        self.logger = get_logger("orchestrator")
        self._metadata: Dict[Optional[Path], MetadataStore] = {}
        self._metadata_lock = threading.Lock()

    def run(self, targets: Sequence[GenerationTarget]) -> List[TargetOutcome]:
        """Run every target; outcomes come back in the order targets were given."""
        defines = self.config.platform_defines() if self.config else {}
        for target in targets:
            defines.setdefault(target.platform_id, target.guard)

        workers = max(1, min(self.jobs, len(targets)))
        if workers == 1:
            outcomes = [self.run_target(target, defines) for target in targets]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="jnigen") as pool:
                outcomes = list(pool.map(lambda target: self.run_target(target, defines), targets))

        for outcome in outcomes:
            log_warnings(self.logger, outcome.target.platform_id, outcome.warnings)
        return outcomes

    def run_target(
        self,
        target: GenerationTarget,
        platform_defines: Optional[Mapping[str, str]] = None,
    ) -> TargetOutcome:
        outcome = TargetOutcome(target=target)
        self.logger.info("Generating %s into %s", target.platform_id, target.output_dir)
        try:
            outcome.advance(TargetState.LOADING)
            metadata = self._load_metadata(target.metadata_file)
            engine = TypeMappingEngine(target, self.rules)
            self.logger.debug("Type rules for %s: %s", target.platform_id, ", ".join(engine.keys))
            table = StatsTable.load(target.output_dir / stats_file_names(target.stats_name)["table"])

            outcome.advance(TargetState.MODELING)
            exclude = self.config.exclude_paths if self.config else []
            builder = SourceModelBuilder(metadata, scanner=SourceScanner(exclude))
            model = builder.build(target.source_root)
            for key in metadata.stale_keys(model.identities()):
                record = metadata.get(key)
                origin = record.origin if record is not None and record.origin else str(target.metadata_file)
                outcome.warnings.append(GenerationWarning("metadata", f"record '{key}' matches no declaration", origin))

            env = create_environment(self.templates_dir)
            natives = NativesEmitter(engine, stats_name=target.stats_name, env=env)
            outcome.advance(TargetState.MAPPING)
            structs = {struct.name: struct for struct in model.structs() if struct.generated}
            mapped = [(unit, natives.map_unit(unit, structs)) for unit in model.units]

            outcome.advance(TargetState.EMITTING)
            defines = dict(platform_defines or {target.platform_id: target.guard})
            struct_emitter = StructsEmitter(engine, defines, env=env)
            files: List[GeneratedFile] = []
            for unit, mappings in mapped:
                files.extend(natives.emit(unit, mappings))
                files.extend(struct_emitter.emit(unit))
            files.extend(StatsEmitter(target.stats_name, env=env).emit(model, table))
            outcome.warnings.extend(struct_emitter.warnings)

            outcome.advance(TargetState.DIFFING)
            outcome.files = self._write(target, files)
            outcome.advance(TargetState.WRITTEN)
        except (GenerationError, ConfigError, OSError) as exc:
            self.logger.error("Target %s failed: %s", target.platform_id, exc)
            outcome.fail(exc)
            return outcome

        self._log_summary(outcome, model)
        return outcome

    # ------------------------------------------------------------------
    # Internal helpers

    def _load_metadata(self, path: Optional[Path]) -> MetadataStore:
        key = Path(path).resolve() if path is not None else None
        with self._metadata_lock:
            store = self._metadata.get(key)
            if store is None:
                store = MetadataStore.load(key)
                self._metadata[key] = store
        return store

    def _write(self, target: GenerationTarget, files: Sequence[GeneratedFile]) -> List[FileResult]:
        writer = OutputWriter(target.output_dir, check=self.check, dry_run=self.dry_run)
        if not writer.writes:
            return writer.write(files)
        with OutputLock(target.output_dir):
            return writer.write(files)

    def _log_summary(self, outcome: TargetOutcome, model: SourceModel) -> None:
        changed = len(outcome.changed)
        verb = "would change" if self.check or self.dry_run else "written"
        self.logger.info(
            "%s: %d natives, %d struct mirrors; %d file(s) %s, %d unchanged",
            outcome.target.platform_id,
            sum(1 for _ in model.natives()),
            sum(1 for _ in model.structs()),
            changed,
            verb,
            len(outcome.files) - changed,
        )


__all__ = ["Orchestrator", "TargetOutcome", "TargetState"]
