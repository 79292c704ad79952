from __future__ import annotations

from pathlib import Path
import json
import os
import tempfile
import textwrap
import unittest

from targetkit.command_runner import RecordingCommandRunner
from targetkit.console import Console
from targetkit.errors import GenerationError
from targetkit.model import TargetState
from targetkit.project import Project
from targetkit.settings import ProjectSettings


def make_settings(root: Path, **overrides) -> ProjectSettings:
    values = dict(
        name="Demo",
        version="1.2.3",
        source_dir=root,
        binary_dir=root / "build",
        install_prefix=root / "install",
        testing_dir=root / "test",
        config_dir=root / "config",
        python_executable="python3",
    )
    values.update(overrides)
    return ProjectSettings(**values)


class ScriptGeneratorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.build = self.root / "build"
        (self.root / "tool.py.in").write_text(
            textwrap.dedent(
                """
                #!/usr/bin/env python
                VERSION = "@PROJECT_VERSION@"
                MODE = "@MODE@"
                INSTALLED = @BUILD_INSTALL_SCRIPT@
                LINKED = "@LINK_DEPENDS@"
                """
            ).lstrip()
        )
        pkg = self.root / "pkg"
        (pkg / "sub").mkdir(parents=True)
        (pkg / "core.py").write_text("NAME = '@PROJECT_NAME@'\n")
        (pkg / "sub" / "extra.py").write_text("")
        self.runner = RecordingCommandRunner()
        self.console = Console("none")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _project(self, **overrides) -> Project:
        return Project(make_settings(self.root, **overrides), console=self.console, runner=self.runner)

    def test_generate_is_idempotent(self) -> None:
        project = self._project()
        target = project.add_executable("tool", "tool.py")
        first = project.scripts.generate(target)
        self.assertIsNotNone(first)
        self.assertIs(target.state, TargetState.GENERATED)
        self.assertIsNone(project.scripts.generate(target))
        self.assertEqual(len(project.engine.steps_for("demo.tool")), 1)
        self.assertEqual(project.finalize(), [])

    def test_single_script_outputs(self) -> None:
        project = self._project()
        project.add_executable("tool", "tool.py")
        project.finalize()
        step = project.engine.steps_for("demo.tool")[0]
        staged = self.build / "targetkit" / "demo.tool.dir" / "install" / "tool"
        self.assertEqual(step.outputs, (self.build / "bin" / "tool", staged))
        self.assertEqual(step.main_dependency, self.root / "tool.py.in")
        rule = project.engine.install_rules[0]
        self.assertEqual((rule.kind, rule.source, rule.destination, rule.rename), ("programs", str(staged), "bin", "tool"))
        self.assertEqual(rule.component, "Runtime")

    def test_module_gets_namespace_prefix_and_compiled_outputs(self) -> None:
        project = self._project(compile_scripts=True)
        project.add_script("mod", "pkg/core.py")
        project.finalize()
        step = project.engine.steps_for("demo.mod")[0]
        output = self.build / "lib" / "python" / "demo" / "core.py"
        self.assertIn(output, step.outputs)
        self.assertIn(output.with_name("core.pyc"), step.outputs)
        self.assertIn(output.with_name("core.pyc"), project.engine.clean_files)
        destinations = {rule.destination for rule in project.engine.install_rules}
        self.assertIn("lib/python/demo", destinations)

    def test_clean_files_include_compiled_siblings(self) -> None:
        project = self._project()
        project.add_script("mod", "pkg/core.py")
        project.finalize()
        output = self.build / "lib" / "python" / "demo" / "core.py"
        self.assertIn(output, project.engine.clean_files)
        self.assertIn(output.with_name("core.pyc"), project.engine.clean_files)
        self.assertNotIn(output.with_name("core.pyc"), project.engine.steps_for("demo.mod")[0].outputs)

    def test_library_preserves_relative_structure(self) -> None:
        project = self._project()
        project.add_library("pkg")
        project.set_target_properties("pkg", PREFIX="")
        project.finalize()
        step = project.engine.steps_for("demo.pkg")[0]
        library_dir = self.build / "lib" / "python"
        self.assertIn(library_dir / "pkg" / "core.py", step.outputs)
        self.assertIn(library_dir / "pkg" / "sub" / "extra.py", step.outputs)
        destinations = sorted(rule.destination for rule in project.engine.install_rules if "_initpy" not in rule.source)
        self.assertEqual(destinations, ["lib/python/pkg", "lib/python/pkg/sub"])

    def test_late_property_override_is_used(self) -> None:
        project = self._project()
        project.add_executable("tool", "tool.py")
        project.set_target_properties("tool", OUTPUT_NAME="renamed")
        project.finalize()
        self.assertIn(self.build / "bin" / "renamed", project.engine.steps_for("demo.tool")[0].outputs)

    def test_link_dependencies_order_steps(self) -> None:
        project = self._project()
        project.add_executable("tool", "tool.py")
        project.target_link_libraries("tool", "pkg")
        project.add_library("pkg")
        project.finalize()
        tool_step = project.engine.steps_for("demo.tool")[0]
        self.assertEqual(tool_step.target_dependencies, ("demo.pkg",))
        names = [step.name for step in project.engine.ordered_steps()]
        self.assertLess(names.index("_demo.pkg"), names.index("_demo.tool"))
        action = tool_step.action
        self.assertEqual(action.build_link_depends, [str(self.build / "lib" / "python" / "demo")])
        self.assertEqual(action.install_link_depends, [str(self.root / "install" / "lib" / "python" / "demo")])

    def test_transitive_link_dependencies_of_scripts(self) -> None:
        project = self._project()
        project.add_executable("tool", "tool.py")
        project.add_script("mod", "pkg/core.py")
        project.add_script("extra", "pkg/sub/extra.py")
        project.target_link_libraries("tool", "mod")
        project.target_link_libraries("mod", "extra")
        project.finalize()

        tool_step = project.engine.steps_for("demo.tool")[0]
        self.assertEqual(tool_step.target_dependencies, ("demo.extra", "demo.mod"))
        self.assertEqual(project.engine.steps_for("demo.mod")[0].target_dependencies, ("demo.extra",))
        names = [step.name for step in project.engine.ordered_steps()]
        self.assertLess(names.index("_demo.extra"), names.index("_demo.mod"))
        self.assertLess(names.index("_demo.mod"), names.index("_demo.tool"))

    def test_build_configures_both_variants(self) -> None:
        config_dir = self.root / "config"
        config_dir.mkdir()
        (config_dir / "ScriptConfig.toml").write_text('MODE = "project"\n')
        project = self._project()
        project.add_executable("tool", "tool.py", compile_definitions='MODE = "inline"')
        project.finalize()
        project.build()

        built = self.build / "bin" / "tool"
        text = built.read_text()
        self.assertIn('VERSION = "1.2.3"', text)
        self.assertIn('MODE = "inline"', text)
        self.assertIn("INSTALLED = False", text)
        self.assertTrue(os.access(built, os.X_OK))
        staged = self.build / "targetkit" / "demo.tool.dir" / "install" / "tool"
        self.assertIn("INSTALLED = True", staged.read_text())
        inline = json.loads((self.build / "targetkit" / "demo.tool.dir" / "ScriptConfig.json").read_text())
        self.assertEqual(inline, {"MODE": "inline"})

    def test_project_config_applies_without_inline_config(self) -> None:
        config_dir = self.root / "config"
        config_dir.mkdir()
        (config_dir / "ScriptConfig.toml").write_text('MODE = "{{PROJECT_NAME}}-project"\n')
        project = self._project()
        project.add_executable("tool", "tool.py")
        project.finalize()
        project.build()
        self.assertIn('MODE = "Demo-project"', (self.build / "bin" / "tool").read_text())

    def test_build_records_compile_commands(self) -> None:
        project = self._project(compile_scripts=True)
        project.add_script("mod", "pkg/core.py")
        project.set_target_properties("mod", PREFIX="")
        project.finalize()
        project.build()
        output = self.build / "lib" / "python" / "core.py"
        self.assertEqual(output.read_text(), "NAME = 'Demo'\n")
        commands = [record.command for record in self.runner.commands]
        self.assertIn(["python3", "-c", commands[0][2], str(output), str(output) + "c"], commands)
        self.assertEqual(len(commands), 2)

    def test_strict_variables(self) -> None:
        project = self._project(strict_variables=True)
        project.add_executable("tool", "tool.py")
        project.finalize()
        with self.assertRaises(GenerationError) as context:
            project.build()
        self.assertEqual(context.exception.uid, "demo.tool")
        self.assertIn("MODE", str(context.exception))

    def test_missing_global_config_file(self) -> None:
        project = self._project(script_config_file=self.root / "missing.toml")
        project.add_executable("tool", "tool.py")
        with self.assertRaises(GenerationError):
            project.finalize()

    def test_invalid_inline_config(self) -> None:
        project = self._project()
        project.add_executable("tool", "tool.py", compile_definitions="MODE = ")
        with self.assertRaises(GenerationError):
            project.finalize()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
