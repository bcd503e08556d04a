from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
import subprocess
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

from distforge import __version__
from distforge.errors import CommandExit
from distforge.foundation.config_io import find_file, load_yaml_mapping
from distforge.foundation.executor import CommandExecutor, split_command
from distforge.foundation.reporter import Reporter
from distforge.framework.artifacts import (
    BUILD_SCRIPT_FILENAME,
    LEGACY_META_FILENAME,
    MANIFEST_FILENAME,
    META_FILENAME,
    MetaDescriptor,
    build_archive,
    manifest_entries,
    render_build_script,
    write_descriptors,
    write_manifest,
)
from distforge.framework.config import CONFIG_FILENAME, ProjectConfig, normalize_version
from distforge.framework.licenses import LICENSE_FILENAME, License, available_licenses, build_license
from distforge.framework.metadata import bump_version, read_module_metadata
from distforge.framework.plugins import PluginLoader, resolve_target
from distforge.framework.prereqs import PREREQS_FILENAME, RELATIONS, PrereqSpec
from distforge.framework.runtime import DistContext
from distforge.framework.vcs import list_tracked_files
from distforge.framework.verifier import DependencyVerifier, Issue
from distforge.framework.workdir import ScopedWorkDir, WorkDirManager, pushd
from pipelinekit import ActionStep, Block, DefaultStepRecorder, StepRunner, TriggerBus

logger = logging.getLogger(__name__)

COMMANDS: tuple[str, ...] = ("test", "dist", "install", "release")

AFTER_SETUP_WORKDIR = "after_setup_workdir"
AFTER_BUILD_DIST = "after_build_dist"

GENERATED_BY = f"distforge/{__version__}"
RELEASE_TESTING_ENV = "RELEASE_TESTING"

_PYTHON_SPEC_PREFIX_RE = re.compile(r"^\s*(>=|==|~=|>)?\s*")


class DistStepRecorder(DefaultStepRecorder):
    """Step recorder for the dist block; handled aborts were already reported."""

    def on_step_error(self, ctx: DistContext, path: str, exc: Exception) -> None:
        if isinstance(exc, CommandExit):
            ctx.logger.debug("Step aborted: %s", path)
            return
        super().on_step_error(ctx, path, exc)


def default_installer() -> list[str]:
    return [sys.executable, "-m", "pip", "install"]


def default_uploader() -> list[str]:
    return ["twine", "upload"]


class Orchestrator:
    """Runs one pipeline command against the project that owns the current directory.

    A run loads `distforge.yaml` and `prereqs.yaml`, back-fills identity
    fields from the primary module, loads plugins (which may register
    triggers), verifies develop-time requirements and then executes the
    command from the project root. The scratch root is removed afterwards
    unless `debug` is set.
    """

    def __init__(
        self,
        *,
        reporter: Reporter | None = None,
        debug: bool = False,
        auto_install: bool = True,
        file_lister: Callable[[Path], list[str]] = list_tracked_files,
    ):
        self.reporter = reporter or Reporter()
        self.executor = CommandExecutor(self.reporter)
        self.triggers = TriggerBus()
        self.plugins = PluginLoader()
        self.runner = StepRunner(recorder=DistStepRecorder())
        self.debug = debug
        self.auto_install = auto_install
        self.file_lister = file_lister

        self.base_dir: Path | None = None
        self.config: ProjectConfig | None = None
        self.prereqs: PrereqSpec | None = None
        self.license: License | None = None
        self.workdirs: WorkDirManager | None = None

    # -- entry point -----------------------------------------------------

    def run(self, command: str, **options: Any) -> int:
        """Return 0 on success, 1 when the command aborted after reporting why."""
        try:
            self._run(command, options)
        except CommandExit:
            return 1
        return 0

    def _run(self, command: str, options: dict[str, Any]) -> None:
        handler = getattr(self, f"cmd_{command}", None) if command in COMMANDS else None
        if handler is None:
            self.reporter.error(f"Could not find command '{command}'")

        config_file = self.find_file(CONFIG_FILENAME)
        prereqs_file = self.find_file(PREREQS_FILENAME)

        self.prereqs = PrereqSpec.from_mapping(load_yaml_mapping(prereqs_file))
        self.base_dir = config_file.parent
        self.config = self.load_config(config_file)
        self.workdirs = WorkDirManager(self.base_dir, after_stage=self._after_stage)
        self.workdirs.scratch_root.mkdir(parents=True, exist_ok=True)

        try:
            self.load_plugins()
            self.init_license()
            self.verify_dependencies(["develop"], "requires")
            with pushd(self.base_dir):
                handler(**options)
        finally:
            if not self.debug:
                self.workdirs.cleanup()

    # -- setup -----------------------------------------------------------

    def find_file(self, name: str) -> Path:
        found = find_file(name)
        if found is None:
            self.reporter.error(f"{name} not found in {os.getcwd()}.")
        return found

    def load_config(self, path: Path) -> ProjectConfig:
        try:
            raw = load_yaml_mapping(path)
        except ValueError as exc:
            self.reporter.error(f"YAML error in {path}: {exc}")

        if not raw.get("main_module"):
            self.reporter.error(f"Missing main_module in {CONFIG_FILENAME}")

        config, warnings = ProjectConfig.from_dict(raw)
        for warning in warnings:
            self.reporter.warn(f"Warning: {warning}")

        try:
            meta = read_module_metadata(config.main_module, self.base_dir)
        except (OSError, SyntaxError) as exc:
            self.reporter.error(f"Cannot read main_module {config.main_module}: {exc}")

        updates = {
            key: getattr(meta, key)
            for key in ("name", "abstract", "version", "author", "license")
            if not getattr(config, key) and getattr(meta, key)
        }
        config = replace(config, **updates)
        missing = config.missing_identity_fields()
        if missing:
            self.reporter.error(f"Missing {', '.join(missing)} in {config.main_module}")

        self.register_python_floor(meta.python_requires, config.main_module)

        self.reporter.infof("Name: %s", config.name)
        self.reporter.infof("Abstract: %s", config.abstract)
        self.reporter.infof("Version: %s", config.version)

        return replace(config, version=normalize_version(str(config.version)))

    def register_python_floor(self, python_requires: str | None, main_module: str) -> None:
        floor = _PYTHON_SPEC_PREFIX_RE.sub("", python_requires or "", count=1)
        if floor:
            try:
                self.register_prereqs("runtime", "requires", "python", floor)
                return
            except ValueError:
                logger.debug("Unusable python requirement %r", python_requires)
        self.reporter.warnf("Cannot determine python version info from %s", main_module)

    def load_plugins(self) -> None:
        for registration in self.config.plugins:
            self.reporter.infof("Loading plugin: %s", resolve_target(registration.identifier))
            self.plugins.load(registration.identifier, self, registration.config)
        self.triggers.freeze()

    def init_license(self) -> None:
        try:
            self.license = build_license(str(self.config.license), str(self.config.holder))
        except KeyError:
            self.reporter.error(
                f"Unknown license: {self.config.license} "
                f"(available: {', '.join(available_licenses())})"
            )

    def register_prereqs(self, phase: str, relation: str, package: str, floor: str) -> str:
        return self.prereqs.register(phase, relation, package, floor)

    # -- triggers --------------------------------------------------------

    def add_trigger(self, name: str, callback: Callable[..., Any]) -> None:
        self.triggers.add(name, callback)

    def call_trigger(self, name: str, *args: Any) -> None:
        self.triggers.fire(name, self, *args)

    # -- dependencies ----------------------------------------------------

    def installer(self) -> list[str]:
        if self.config is not None and self.config.install_command:
            return split_command(self.config.install_command)
        return default_installer()

    def uploader(self) -> list[str]:
        if self.config is not None and self.config.upload_command:
            return split_command(self.config.upload_command)
        return default_uploader()

    def verifier(self) -> DependencyVerifier:
        return DependencyVerifier(
            self.prereqs,
            reporter=self.reporter,
            executor=self.executor,
            installer=self.installer(),
            auto_install=self.auto_install,
        )

    def verify_dependencies(self, phases: list[str], relation: str) -> list[Issue]:
        return self.verifier().verify(phases, relation)

    # -- staging ---------------------------------------------------------

    def gather_files(self) -> list[str]:
        try:
            return list(self.file_lister(self.base_dir))
        except FileNotFoundError:
            self.reporter.error("git is required to list the project's files")
        except subprocess.CalledProcessError as exc:
            self.reporter.error(f"Cannot list tracked files (git exit={exc.returncode})")

    def setup_workdir(self, files: list[str] | None = None) -> ScopedWorkDir:
        if files is None:
            files = self.gather_files()
        scope = self.workdirs.stage(files)
        self.reporter.infof("Creating working directory: %s", scope.path)
        return scope

    def _after_stage(self, work_dir: Path) -> None:
        self.call_trigger(AFTER_SETUP_WORKDIR)

    def test_argv(self) -> list[str]:
        if self.config.test_command:
            return split_command(self.config.test_command)
        dirs = [name for name in ("tests", "xt") if Path(name).is_dir()]
        return [sys.executable, "-m", "pytest", *dirs]

    # -- commands --------------------------------------------------------

    def cmd_test(self) -> None:
        with self.setup_workdir():
            for relation in RELATIONS:
                self.verify_dependencies(["test", "runtime"], relation)
            self.executor.run(*self.test_argv())

    def cmd_dist(self, test: bool = True) -> Path:
        return self.build_dist(test)

    def cmd_install(self, test: bool = False) -> None:
        tarball = self.build_dist(test)
        self.executor.run(*self.installer(), str(tarball))
        if not self.debug:
            tarball.unlink()

    def cmd_release(self, test: bool = True) -> Path:
        main_module = self.config.main_module
        try:
            old, new = bump_version(main_module, self.base_dir)
        except ValueError as exc:
            self.reporter.error(str(exc))
        self.reporter.infof("Bumped version %s -> %s", old, new)

        version = read_module_metadata(main_module, self.base_dir).version or new
        changes = self.base_dir / self.config.changes_file
        while not changes_mention(changes, version):
            answer = self.reporter.prompt(
                f"There is no {version}, do you want to edit changes file?", "y"
            )
            if answer.strip().lower().startswith("y"):
                self.edit_file(changes)
            else:
                self.reporter.error("Giving up!")

        self.config = replace(self.config, version=normalize_version(version))

        tarball = self.build_dist(test)

        self.reporter.infof("Upload to package index")
        self.executor.run(*self.uploader(), str(tarball))
        self.reporter.success(f"Released {tarball.name}")
        return tarball

    def edit_file(self, path: Path) -> None:
        editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"
        self.executor.run(*shlex.split(editor), str(path))

    # -- dist sequence ---------------------------------------------------

    def build_dist(self, test: bool) -> Path:
        for relation in RELATIONS:
            self.verify_dependencies(["runtime"], relation)
        if test:
            for relation in RELATIONS:
                self.verify_dependencies(["test"], relation)

        gathered = self.gather_files()
        with self.setup_workdir(gathered) as work_dir:
            ctx = DistContext(
                base_dir=self.base_dir,
                work_dir=work_dir,
                gathered=[str(entry) for entry in gathered],
                logger=logging.getLogger("distforge.dist"),
                test=test,
            )
            self.runner.run(ctx, self.dist_block(test))
            self.report_steps(ctx)

        tarball: Path = ctx.outputs["archive"]
        self.call_trigger(AFTER_BUILD_DIST, tarball)
        return tarball

    def report_steps(self, ctx: DistContext) -> None:
        for record in ctx.steps:
            logger.debug(
                "%s finished at %s: %s", record["path"], record["created_at"], record.get("result")
            )
        if self.debug:
            self.reporter.infof("Completed steps: %s", ", ".join(record["name"] for record in ctx.steps))

    def dist_block(self, test: bool) -> Block:
        nodes = [
            ActionStep("build_script", self._step_build_script),
            ActionStep("license", self._step_license),
            ActionStep("meta", self._step_meta),
            ActionStep("manifest", self._step_manifest, capture_key="manifest"),
        ]
        if test:
            nodes.append(ActionStep("release_tests", self._step_release_tests))
        nodes.append(ActionStep("archive", self._step_archive, capture_key="archive"))
        return Block(name="dist", nodes=nodes)

    def _step_build_script(self, ctx: DistContext) -> str:
        self.reporter.infof("Generating %s", BUILD_SCRIPT_FILENAME)
        script = render_build_script(
            self.config, self.prereqs, self.license, generated_by=GENERATED_BY
        )
        Path(BUILD_SCRIPT_FILENAME).write_text(script, encoding="utf-8")
        shutil.copyfile(BUILD_SCRIPT_FILENAME, ctx.base_dir / BUILD_SCRIPT_FILENAME)
        return BUILD_SCRIPT_FILENAME

    def _step_license(self, ctx: DistContext) -> str:
        self.reporter.infof("Generating license file")
        Path(LICENSE_FILENAME).write_text(self.license.fulltext(), encoding="utf-8")
        shutil.copyfile(LICENSE_FILENAME, ctx.base_dir / LICENSE_FILENAME)
        return LICENSE_FILENAME

    def _step_meta(self, ctx: DistContext) -> list[str]:
        descriptor = MetaDescriptor.from_project(
            self.config, self.prereqs, self.license, generated_by=GENERATED_BY
        )
        legacy, structured = write_descriptors(descriptor)
        return [legacy.name, structured.name]

    def _step_manifest(self, ctx: DistContext) -> list[str]:
        self.reporter.infof("Writing %s file", MANIFEST_FILENAME)
        entries = manifest_entries(
            ctx.gathered,
            [
                BUILD_SCRIPT_FILENAME,
                LICENSE_FILENAME,
                META_FILENAME,
                LEGACY_META_FILENAME,
                MANIFEST_FILENAME,
            ],
        )
        write_manifest(entries, MANIFEST_FILENAME)
        return entries

    def _step_release_tests(self, ctx: DistContext) -> None:
        self.executor.run(*self.test_argv(), env={RELEASE_TESTING_ENV: "1"})

    def _step_archive(self, ctx: DistContext) -> Path:
        tarball = build_archive(
            ctx.outputs["manifest"],
            name=str(self.config.name),
            version=str(self.config.version),
            source_dir=ctx.work_dir,
            dest_dir=ctx.base_dir,
        )
        self.reporter.infof("Wrote %s", tarball.name)
        return tarball


def changes_mention(path: Path, version: str) -> bool:
    if not path.is_file():
        return False
    text = path.read_text(encoding="utf-8")
    return re.search(rf"^{re.escape(version)}\b", text, re.MULTILINE) is not None
