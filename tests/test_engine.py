from __future__ import annotations

from pathlib import Path
import json
import tempfile
import unittest

from targetkit.command_runner import CommandRunner
from targetkit.engine import BuildStep, InstallRule, RecordingEngine, StepAction
from targetkit.model import TargetKind
from targetkit.sources import GlobRecord


class RecordAction(StepAction):
    def __init__(self, log: list, name: str) -> None:
        self.log = log
        self.name = name

    def execute(self, runner: CommandRunner) -> None:
        self.log.append(self.name)

    def describe(self) -> dict:
        return {"type": "record", "name": self.name}


class RecordingEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = RecordingEngine()
        self.log: list = []

    def _step(self, target: str, *, depends: tuple = ()) -> BuildStep:
        step = BuildStep(
            name=f"_{target}",
            target=target,
            outputs=(Path(f"/build/{target}"),),
            action=RecordAction(self.log, target),
            target_dependencies=depends,
        )
        self.engine.add_build_step(step)
        return step

    def test_ordered_steps_follow_dependencies(self) -> None:
        self._step("c", depends=("b",))
        self._step("b", depends=("a",))
        self._step("a")
        self._step("d")
        self.assertEqual([step.name for step in self.engine.ordered_steps()], ["_a", "_b", "_c", "_d"])
        self.engine.run(runner=CommandRunner())
        self.assertEqual(self.log, ["a", "b", "c", "d"])

    def test_target_level_dependencies_order_steps(self) -> None:
        self._step("x")
        self._step("y")
        self.engine.add_target_dependency("x", "y")
        self.engine.add_target_dependency("x", "y")
        self.assertEqual(self.engine.dependencies, {"x": ["y"]})
        self.assertEqual([step.name for step in self.engine.ordered_steps()], ["_y", "_x"])

    def test_cycle_is_reported(self) -> None:
        self._step("a", depends=("b",))
        self._step("b", depends=("a",))
        with self.assertRaises(ValueError):
            self.engine.ordered_steps()

    def test_duplicate_step_names(self) -> None:
        self._step("a")
        with self.assertRaises(ValueError):
            self._step("a")

    def test_serialize(self) -> None:
        self.engine.add_native_target("demo.app", TargetKind.EXECUTABLE, [Path("/src/main.cxx")], {"OUTPUT_NAME": "app"})
        self.engine.link_libraries("demo.app", ["-lm"])
        self.engine.add_install_rule(InstallRule(kind="targets", source="demo.app", destination="bin", component="Runtime"))
        self.engine.add_clean_files([Path("/build/a"), Path("/build/a")])
        self._step("demo.tool")
        data = json.loads(self.engine.serialize())
        self.assertEqual(data["native_targets"][0]["link_libraries"], ["-lm"])
        self.assertEqual(data["native_targets"][0]["sources"], ["/src/main.cxx"])
        self.assertEqual(data["install"][0]["destination"], "bin")
        self.assertEqual(data["clean_files"], ["/build/a"])
        self.assertEqual(data["steps"][0]["action"], {"type": "record", "name": "demo.tool"})

    def test_link_libraries_requires_native_target(self) -> None:
        with self.assertRaises(KeyError):
            self.engine.link_libraries("demo.missing", ["-lm"])

    def test_stale_globs_detect_changed_file_lists(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            root = Path(temp)
            (root / "a.py").write_text("")
            record = GlobRecord(uid="demo.lib", base_dir=root, patterns=("*.py",))
            record.files = record.expand()
            self.engine.add_glob_check(record)
            self.assertEqual(self.engine.stale_globs(), [])

            (root / "b.py").write_text("")
            self.assertEqual(self.engine.stale_globs(), ["demo.lib"])

            (root / "b.py").unlink()
            self.assertEqual(self.engine.stale_globs(), [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
