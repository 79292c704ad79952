from __future__ import annotations

from pathlib import Path
import json
import tempfile
import unittest

from targetkit.console import Console
from targetkit.errors import (
    AmbiguousLanguage,
    ConflictingOptions,
    InvalidSources,
    MissingSources,
    NameCollision,
    PhaseError,
    UnknownLanguage,
)
from targetkit.model import Language, TargetKind, TargetState
from targetkit.project import Project
from targetkit.settings import ProjectSettings


def make_settings(root: Path, **overrides) -> ProjectSettings:
    values = dict(
        name="Demo",
        source_dir=root,
        binary_dir=root / "build",
        install_prefix=root / "install",
        testing_dir=root / "test",
        config_dir=root / "config",
    )
    values.update(overrides)
    return ProjectSettings(**values)


class TargetDispatcherTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        for name, text in {
            "main.cxx": "int main() { return 0; }\n",
            "util.cxx": "",
            "tool.py": "#!/usr/bin/env python\nprint('@PROJECT_NAME@')\n",
            "helper.pl": "#!/usr/bin/env perl\n",
            "runner": "#!/bin/bash\necho run\n",
            "notes": "plain text\n",
            "solve.m": "function solve()\n",
        }.items():
            (self.root / name).write_text(text)
        self.console = Console("none")
        self.project = Project(make_settings(self.root), console=self.console)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_native_executable(self) -> None:
        target = self.project.add_executable("app", "main.cxx")
        self.assertEqual(target.uid, "demo.app")
        self.assertIs(target.kind, TargetKind.EXECUTABLE)
        self.assertIs(target.state, TargetState.GENERATED)
        self.assertEqual(target.properties["OUTPUT_DIRECTORY"], str(self.root / "build" / "bin"))
        self.assertEqual(target.properties["INSTALL_DIRECTORY"], "bin")
        self.assertEqual(target.properties["COMPONENT"], "Runtime")
        native = self.project.engine.native_targets["demo.app"]
        self.assertEqual(native.sources, (self.root / "main.cxx",))
        rule = self.project.engine.install_rules[0]
        self.assertEqual((rule.kind, rule.source, rule.destination, rule.export), ("targets", "demo.app", "bin", "demo.app"))

    def test_name_derived_from_existing_file(self) -> None:
        app = self.project.add_executable("main.cxx")
        self.assertEqual(app.uid, "demo.main")
        module = self.project.add_script("tool.py")
        self.assertEqual(module.uid, "demo.tool.py")
        self.assertIs(module.kind, TargetKind.SCRIPT_MODULE)
        script = self.project.add_executable("runner")
        self.assertIs(script.kind, TargetKind.SCRIPT_EXECUTABLE)
        self.assertIs(script.language, Language.BASH)

    def test_library_types(self) -> None:
        self.assertIs(self.project.add_library("shared", "util.cxx").kind, TargetKind.SHARED_LIBRARY)
        self.assertIs(self.project.add_library("static", "util.cxx", static=True).kind, TargetKind.STATIC_LIBRARY)
        self.assertIs(self.project.add_library("plugin", "util.cxx", module=True).kind, TargetKind.MODULE_LIBRARY)
        self.assertIs(self.project.add_library("mexfile", "util.cxx", mex=True).kind, TargetKind.MEX)
        static = self.project.target("static")
        self.assertEqual(static.properties["INSTALL_DIRECTORY"], "lib")
        self.assertEqual(static.properties["PREFIX"], "lib")
        self.assertEqual(static.properties["SUFFIX"], ".a")

    def test_default_library_type_follows_settings(self) -> None:
        project = Project(make_settings(self.root, build_shared_libs=False), console=self.console)
        self.assertIs(project.add_library("util", "util.cxx").kind, TargetKind.STATIC_LIBRARY)

    def test_conflicting_library_types(self) -> None:
        with self.assertRaises(ConflictingOptions) as context:
            self.project.add_library("util", "util.cxx", static=True, shared=True)
        self.assertIn("STATIC, SHARED", str(context.exception))
        with self.assertRaises(ConflictingOptions):
            self.project.add_library("pylib", "tool.py", shared=True)
        with self.assertRaises(ConflictingOptions):
            self.project.add_script("tool.py", executable=True, libexec=True)
        self.assertEqual(len(self.project.registry), 0)

    def test_ambiguous_language_lists_sources(self) -> None:
        with self.assertRaises(AmbiguousLanguage) as context:
            self.project.add_library("mixed", "tool.py", "helper.pl")
        message = str(context.exception)
        self.assertIn("Target demo.mixed:", message)
        self.assertIn(str(self.root / "tool.py"), message)
        self.assertIn(str(self.root / "helper.pl"), message)

    def test_unknown_language(self) -> None:
        with self.assertRaises(UnknownLanguage):
            self.project.add_executable("notes")
        with self.assertRaises(UnknownLanguage):
            self.project.add_executable("app", "main.cxx", language="fortran")

    def test_explicit_language_skips_classification(self) -> None:
        target = self.project.add_executable("notes", "notes", language="bash")
        self.assertIs(target.language, Language.BASH)

    def test_missing_sources(self) -> None:
        with self.assertRaises(MissingSources):
            self.project.add_executable("ghost")
        with self.assertRaises(MissingSources):
            self.project.add_executable("ghost", "ghost.py")

    def test_script_requires_single_source(self) -> None:
        with self.assertRaises(InvalidSources):
            self.project.add_executable("two", "tool.py", "tool.py.in2", language="python")
        with self.assertRaises(InvalidSources):
            self.project.add_script("app", "main.cxx")

    def test_collision_leaves_registry_unchanged(self) -> None:
        first = self.project.add_executable("app", "main.cxx")
        with self.assertRaises(NameCollision):
            self.project.add_library("app", "util.cxx")
        self.assertEqual(self.project.registry.uids(), ["demo.app"])
        self.assertIs(self.project.target("app"), first)
        self.assertNotIn("demo.app", [uid for uid in self.project.engine.custom_targets])

    def test_destination_none_disables_installation(self) -> None:
        target = self.project.add_executable("tool", "tool.py", destination="NONE")
        self.assertNotIn("INSTALL_DIRECTORY", target.properties)
        self.project.finalize()
        step = self.project.engine.steps_for("demo.tool")[0]
        self.assertEqual(step.outputs, (self.root / "build" / "bin" / "tool",))
        self.assertEqual(self.project.engine.install_rules, [])

    def test_absolute_destination_is_relative_to_prefix(self) -> None:
        target = self.project.add_executable("app", "main.cxx", destination=str(self.root / "install" / "sbin"))
        self.assertEqual(target.properties["INSTALL_DIRECTORY"], "sbin")

    def test_test_targets(self) -> None:
        test_dir = self.root / "test"
        test_dir.mkdir()
        (test_dir / "check.py").write_text("print('ok')\n")
        (test_dir / "fixtures.py").write_text("")
        with self.project.subdirectory("test"):
            check = self.project.add_executable("check", "check.py")
            fixtures = self.project.add_library("fixtures", "fixtures.py", destination="lib/python")
        self.assertTrue(check.is_test)
        self.assertEqual(check.properties["OUTPUT_DIRECTORY"], str(self.root / "build" / "Testing" / "bin"))
        self.assertNotIn("INSTALL_DIRECTORY", check.properties)
        self.assertNotIn("INSTALL_DIRECTORY", fixtures.properties)
        self.assertEqual(len(self.console.warnings), 1)
        self.assertIn("library used for testing only", self.console.warnings[0])

    def test_libexec_script(self) -> None:
        target = self.project.add_executable("tool", "tool.py", libexec=True)
        self.assertIs(target.kind, TargetKind.SCRIPT_LIBEXEC)
        self.assertEqual(target.properties["OUTPUT_DIRECTORY"], str(self.root / "build" / "libexec"))
        self.assertEqual(target.properties["INSTALL_DIRECTORY"], "lib/demo")

    def test_script_writes_variable_cache(self) -> None:
        target = self.project.add_executable("tool", "tool.py")
        cache = self.root / "build" / "targetkit" / "demo.tool.dir" / "cache.json"
        self.assertEqual(target.build_dir, cache.parent)
        data = json.loads(cache.read_text())
        self.assertEqual(data["PROJECT_NAME"], "Demo")
        self.assertEqual(data["TARGET_UID"], "demo.tool")
        self.assertEqual(data["INSTALL_RUNTIME_DIR"], "bin")

    def test_cross_compiled_targets_are_deferred(self) -> None:
        target = self.project.add_executable("solver", "solve.m")
        self.assertIs(target.kind, TargetKind.MCC_EXECUTABLE)
        self.assertTrue(target.pending)
        self.assertIn("demo.solver", self.project.engine.custom_targets)

    def test_glob_sources_register_check(self) -> None:
        target = self.project.add_library("natives", "*.cxx")
        self.assertEqual(target.sources, (self.root / "main.cxx", self.root / "util.cxx"))
        self.assertIn("demo.natives", self.project.engine.glob_checks)

    def test_export_flag(self) -> None:
        self.assertTrue(self.project.add_executable("app", "main.cxx").exported)
        self.assertFalse(self.project.add_executable("hidden", "main.cxx", export=False).exported)
        project = Project(make_settings(self.root, export=False), console=self.console)
        self.assertFalse(project.add_executable("app", "main.cxx").exported)

    def test_declaration_after_finalize(self) -> None:
        self.project.finalize()
        with self.assertRaises(PhaseError):
            self.project.add_executable("app", "main.cxx")

    def test_unknown_option(self) -> None:
        with self.assertRaises(ValueError):
            self.project.add_executable("app", "main.cxx", shiny=True)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
