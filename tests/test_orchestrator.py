import json
import os
import sys
import tarfile
from pathlib import Path

import pytest

from distforge.app.orchestrator import AFTER_BUILD_DIST, Orchestrator, changes_mention
from distforge.errors import PluginLoadError
from distforge.foundation.logging_utils import setup_logger
from distforge.foundation.reporter import Reporter

TRACKED = ["distforge.yaml", "prereqs.yaml", "src/foo/bar.py", "README.md"]


class RecordingExecutor:
    """Stands in for `CommandExecutor.run`; records argv, env overrides and cwd."""

    def __init__(self, reporter: Reporter, *, fail_on: str | None = None, on_call=None):
        self.reporter = reporter
        self.fail_on = fail_on
        self.on_call = on_call
        self.calls: list[dict] = []

    def __call__(self, *argv, env=None):
        argv = [str(part) for part in argv]
        self.calls.append({"argv": argv, "env": dict(env or {}), "cwd": Path.cwd()})
        if self.on_call is not None:
            self.on_call(argv)
        if self.fail_on is not None and self.fail_on in argv:
            self.reporter.error("Giving up.")

    def argvs(self) -> list[list[str]]:
        return [call["argv"] for call in self.calls]


def _make_project(root: Path, *, extra_config: str = "") -> Path:
    (root / "src" / "foo").mkdir(parents=True)
    (root / "src" / "foo" / "bar.py").write_text(
        '"""Bars for foo."""\n'
        '__version__ = "1.2.3"\n'
        '__author__ = "Jane Doe <jane@example.com>"\n'
        '__python_requires__ = ">=3.8"\n',
        encoding="utf-8",
    )
    (root / "README.md").write_text("# foo\n", encoding="utf-8")
    (root / "distforge.yaml").write_text(
        "main_module: src/foo/bar.py\nlicense: MIT\n" + extra_config, encoding="utf-8"
    )
    (root / "prereqs.yaml").write_text(
        "runtime:\n  requires:\n    PyYAML: '5.1'\n", encoding="utf-8"
    )
    return root.resolve()


def _orchestrator(monkeypatch, **kwargs):
    reporter = Reporter(color=False)
    executor_kwargs = {
        key: kwargs.pop(key) for key in ("fail_on", "on_call") if key in kwargs
    }
    orchestrator = Orchestrator(
        reporter=reporter,
        file_lister=lambda base_dir: list(TRACKED),
        **kwargs,
    )
    recorder = RecordingExecutor(reporter, **executor_kwargs)
    monkeypatch.setattr(orchestrator.executor, "run", recorder)
    return orchestrator, recorder


def test_dist_without_tests_builds_archive_and_never_runs_the_suite(tmp_path, monkeypatch):
    root = _make_project(tmp_path)
    monkeypatch.chdir(root / "src")
    orchestrator, executor = _orchestrator(monkeypatch)

    assert orchestrator.run("dist", test=False) == 0

    archive = root / "foo-bar-v1.2.3.tar.gz"
    assert archive.is_file()
    assert not any("pytest" in argv for argv in executor.argvs())

    with tarfile.open(archive, "r:gz") as tar:
        names = sorted(tar.getnames())
        meta = json.load(tar.extractfile("foo-bar-v1.2.3/pydist.json"))
        manifest = tar.extractfile("foo-bar-v1.2.3/MANIFEST").read().decode("utf-8")

    assert names == sorted(
        f"foo-bar-v1.2.3/{name}"
        for name in TRACKED + ["setup.py", "LICENSE", "pydist.json", "PKG-INFO", "MANIFEST"]
    )
    assert meta["version"] == "v1.2.3"
    assert meta["name"] == "foo-bar"
    assert meta["prereqs"]["runtime"]["requires"] == {"PyYAML": "5.1", "python": "3.8"}
    assert manifest.splitlines()[: len(TRACKED)] == TRACKED

    assert (root / "setup.py").is_file()
    assert "Copyright (c) " in (root / "LICENSE").read_text(encoding="utf-8")
    assert Path.cwd() == root / "src"
    assert not (root / ".build").exists()


def test_dist_with_tests_runs_suite_in_staging_dir_with_release_flag(tmp_path, monkeypatch):
    root = _make_project(tmp_path)
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch)

    assert orchestrator.run("dist", test=True) == 0

    [call] = [call for call in executor.calls if "pytest" in call["argv"]]
    assert call["argv"][:3] == [sys.executable, "-m", "pytest"]
    assert call["env"] == {"RELEASE_TESTING": "1"}
    assert call["cwd"].parent == root / ".build"
    assert (root / "foo-bar-v1.2.3.tar.gz").is_file()


def test_failing_suite_aborts_restores_cwd_and_removes_scratch(tmp_path, monkeypatch, capsys):
    root = _make_project(tmp_path)
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch, fail_on="pytest")

    assert orchestrator.run("dist", test=True) == 1

    assert Path.cwd() == root
    assert not (root / ".build").exists()
    assert not (root / "foo-bar-v1.2.3.tar.gz").exists()
    assert "Giving up." in capsys.readouterr().err


def test_debug_keeps_the_scratch_root(tmp_path, monkeypatch):
    root = _make_project(tmp_path)
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch, fail_on="pytest", debug=True)

    assert orchestrator.run("dist", test=True) == 1

    assert Path.cwd() == root
    staged = list((root / ".build").iterdir())
    assert len(staged) == 1
    assert (staged[0] / "src" / "foo" / "bar.py").is_file()
    assert (staged[0] / "xt").is_dir()


def test_missing_config_is_a_handled_failure(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    orchestrator, executor = _orchestrator(monkeypatch)

    assert orchestrator.run("dist") == 1
    assert "distforge.yaml not found" in capsys.readouterr().err
    assert executor.calls == []


def test_unknown_command_is_a_handled_failure(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(_make_project(tmp_path))
    orchestrator, _executor = _orchestrator(monkeypatch)

    assert orchestrator.run("frobnicate") == 1
    assert "Could not find command 'frobnicate'" in capsys.readouterr().err


def test_unknown_license_is_a_handled_failure(tmp_path, monkeypatch, capsys):
    root = _make_project(tmp_path)
    (root / "distforge.yaml").write_text(
        "main_module: src/foo/bar.py\nlicense: Proprietary\n", encoding="utf-8"
    )
    monkeypatch.chdir(root)
    orchestrator, _executor = _orchestrator(monkeypatch)

    assert orchestrator.run("dist", test=False) == 1
    assert "Unknown license: Proprietary" in capsys.readouterr().err
    assert not (root / ".build").exists()


def test_shell_plugin_hooks_fire_in_staging_dir_and_after_build(tmp_path, monkeypatch, capsys):
    root = _make_project(
        tmp_path,
        extra_config=(
            "Shell:\n"
            "  after_setup_workdir: echo staged\n"
            "  after_build_dist:\n"
            "    - echo built\n"
        ),
    )
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch)

    assert orchestrator.run("dist", test=False) == 0

    staged = [call for call in executor.calls if call["argv"] == ["echo", "staged"]]
    built = [call for call in executor.calls if call["argv"] == ["echo", "built"]]
    assert len(staged) == 1
    assert staged[0]["cwd"].parent == root / ".build"
    assert len(built) == 1
    assert built[0]["cwd"] == root
    assert "Loading plugin: distforge.plugins.shell" in capsys.readouterr().out


def test_install_hands_archive_to_installer_then_removes_it(tmp_path, monkeypatch):
    root = _make_project(tmp_path)
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch)

    assert orchestrator.run("install") == 0

    archive = root / "foo-bar-v1.2.3.tar.gz"
    assert executor.argvs()[-1] == [sys.executable, "-m", "pip", "install", str(archive)]
    assert not archive.exists()
    assert not any("pytest" in argv for argv in executor.argvs())


def test_missing_runtime_package_is_installed_before_building(tmp_path, monkeypatch):
    root = _make_project(tmp_path)
    (root / "prereqs.yaml").write_text(
        "runtime:\n  requires:\n    distforge-surely-not-installed-xyz: '0'\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch)

    assert orchestrator.run("dist", test=False) == 0
    assert executor.argvs()[0] == [
        sys.executable,
        "-m",
        "pip",
        "install",
        "distforge-surely-not-installed-xyz",
    ]


def test_release_bumps_version_builds_and_uploads(tmp_path, monkeypatch):
    root = _make_project(tmp_path)
    (root / "Changes").write_text("1.2.4 2026-10-17\n  - Fixed things\n", encoding="utf-8")
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch)

    assert orchestrator.run("release", test=False) == 0

    assert '__version__ = "1.2.4"' in (root / "src" / "foo" / "bar.py").read_text(encoding="utf-8")
    archive = root / "foo-bar-v1.2.4.tar.gz"
    assert archive.is_file()
    assert executor.argvs()[-1] == ["twine", "upload", str(archive)]


def test_release_opens_editor_until_changes_mention_the_version(tmp_path, monkeypatch):
    root = _make_project(tmp_path)
    changes = root / "Changes"
    changes.write_text("1.2.3 2026-01-01\n  - Initial\n", encoding="utf-8")
    monkeypatch.chdir(root)
    monkeypatch.delenv("VISUAL", raising=False)
    monkeypatch.setenv("EDITOR", "fake-editor --wait")

    def edit(argv):
        if argv[0] == "fake-editor":
            path = Path(argv[-1])
            path.write_text("1.2.4\n  - New\n" + path.read_text(encoding="utf-8"), encoding="utf-8")

    orchestrator, executor = _orchestrator(monkeypatch, on_call=edit)
    prompts: list[str] = []
    monkeypatch.setattr(
        orchestrator.reporter, "prompt", lambda message, default=None: prompts.append(message) or "y"
    )

    assert orchestrator.run("release", test=False) == 0

    assert prompts == ["There is no 1.2.4, do you want to edit changes file?"]
    assert executor.argvs()[0] == ["fake-editor", "--wait", str(changes)]
    assert executor.argvs()[-1][:2] == ["twine", "upload"]


def test_release_declined_edit_gives_up(tmp_path, monkeypatch, capsys):
    root = _make_project(tmp_path)
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch)
    monkeypatch.setattr(orchestrator.reporter, "prompt", lambda message, default=None: "n")

    assert orchestrator.run("release") == 1

    assert "Giving up!" in capsys.readouterr().err
    assert not any(argv[:1] == ["twine"] for argv in executor.argvs())
    assert not (root / ".build").exists()


@pytest.mark.parametrize(
    ("text", "version", "expected"),
    [
        ("1.2.4 2026-10-17\n", "1.2.4", True),
        ("Revision history\n\n1.2.4\n", "1.2.4", True),
        ("  1.2.4\n", "1.2.4", False),
        ("1.2.40\n", "1.2.4", False),
    ],
)
def test_changes_mention(tmp_path, text, version, expected):
    path = tmp_path / "Changes"
    path.write_text(text, encoding="utf-8")
    assert changes_mention(path, version) is expected
    assert changes_mention(tmp_path / "missing", version) is False


def test_unloadable_plugin_propagates_after_cleanup(tmp_path, monkeypatch):
    root = _make_project(tmp_path, extra_config="NoSuchPlugin: {}\n")
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch)

    with pytest.raises(PluginLoadError) as excinfo:
        orchestrator.run("dist", test=False)

    assert excinfo.value.target == "distforge.plugins.no_such_plugin"
    assert Path.cwd() == root
    assert not (root / ".build").exists()


def test_test_command_runs_the_suite_in_a_staged_copy(tmp_path, monkeypatch):
    root = _make_project(tmp_path, extra_config="test_command: pytest -q tests\n")
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch)

    assert orchestrator.run("test") == 0

    [call] = executor.calls
    assert call["argv"] == ["pytest", "-q", "tests"]
    assert call["env"] == {}
    assert call["cwd"].parent == root / ".build"
    assert not (root / "foo-bar-v1.2.3.tar.gz").exists()


def test_identity_fields_missing_everywhere_abort(tmp_path, monkeypatch, capsys):
    root = _make_project(tmp_path)
    (root / "src" / "foo" / "bar.py").write_text('__version__ = "1.0"\n', encoding="utf-8")
    monkeypatch.chdir(root)
    orchestrator, executor = _orchestrator(monkeypatch)

    assert orchestrator.run("dist", test=False) == 1

    err = capsys.readouterr().err
    assert "Missing abstract, author in src/foo/bar.py" in err
    assert "Cannot determine python version info" not in err
    assert executor.calls == []


def test_unparsable_python_requirement_is_only_a_warning(tmp_path, monkeypatch, capsys):
    root = _make_project(tmp_path)
    module = root / "src" / "foo" / "bar.py"
    module.write_text(
        module.read_text(encoding="utf-8").replace('">=3.8"', '">=3.8,<4"'), encoding="utf-8"
    )
    monkeypatch.chdir(root)
    orchestrator, _executor = _orchestrator(monkeypatch)

    assert orchestrator.run("dist", test=False) == 0
    assert "Cannot determine python version info from src/foo/bar.py" in capsys.readouterr().err
    assert orchestrator.prereqs.get("runtime", "requires", "python") is None


def test_malformed_prereqs_propagate(tmp_path, monkeypatch):
    root = _make_project(tmp_path)
    (root / "prereqs.yaml").write_text("runtime:\n  suggests:\n    foo: '1'\n", encoding="utf-8")
    monkeypatch.chdir(root)
    orchestrator, _executor = _orchestrator(monkeypatch)

    with pytest.raises(ValueError, match="Unknown prereq relation"):
        orchestrator.run("dist")


def test_handled_abort_inside_a_step_is_reported_exactly_once(tmp_path, monkeypatch, capsys):
    root = _make_project(tmp_path)
    monkeypatch.chdir(root)
    setup_logger(verbose=False)
    orchestrator, _executor = _orchestrator(monkeypatch, fail_on="pytest")

    assert orchestrator.run("dist", test=True) == 1

    assert capsys.readouterr().err == "Giving up.\n"


def test_unexpected_step_failure_is_still_logged(tmp_path, monkeypatch, capsys):
    root = _make_project(tmp_path)
    monkeypatch.chdir(root)
    setup_logger(verbose=False)
    orchestrator, _executor = _orchestrator(monkeypatch)

    def broken(ctx):
        raise OSError("disk full")

    monkeypatch.setattr(orchestrator, "_step_meta", broken)

    with pytest.raises(OSError):
        orchestrator.run("dist", test=False)

    assert "| ERROR | Step failed: dist/meta (disk full)" in capsys.readouterr().err


def test_debug_run_reports_completed_steps(tmp_path, monkeypatch, capsys):
    root = _make_project(tmp_path)
    monkeypatch.chdir(root)
    orchestrator, _executor = _orchestrator(monkeypatch, debug=True)

    assert orchestrator.run("dist", test=True) == 0

    out = capsys.readouterr().out
    assert "Completed steps: build_script, license, meta, manifest, release_tests, archive" in out


def test_hooks_cannot_be_registered_after_plugins_are_loaded(tmp_path, monkeypatch):
    root = _make_project(tmp_path, extra_config="Shell:\n  after_setup_workdir: echo staged\n")
    monkeypatch.chdir(root)
    orchestrator, _executor = _orchestrator(monkeypatch)

    assert orchestrator.run("dist", test=False) == 0

    with pytest.raises(RuntimeError, match="frozen"):
        orchestrator.add_trigger(AFTER_BUILD_DIST, lambda owner, tarball: None)
    assert orchestrator.triggers.registered(AFTER_BUILD_DIST) == ()
