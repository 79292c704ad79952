from __future__ import annotations

from pathlib import Path
import io
import json
import tempfile
import textwrap
import unittest
from contextlib import redirect_stderr, redirect_stdout

from targetkit import cli


PROJECT = """
[project]
name = "Demo"

[global]
compile_scripts = true

[[targets]]
name = "helper"
type = "script"
sources = ["helper.py"]

[[targets]]
name = "tool"
type = "executable"
sources = ["tool.sh"]
dependencies = ["helper"]
"""


class CommandLineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name)
        (self.workspace / "helper.py").write_text("NAME = '@PROJECT_NAME@'\n")
        (self.workspace / "tool.sh").write_text("#!/bin/bash\necho @PROJECT_VERSION@\n")
        self.project_file = self.workspace / "project.toml"
        self.project_file.write_text(textwrap.dedent(PROJECT))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _run(self, *argv: str) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            exit_code = cli.main(list(argv))
        return exit_code, stdout.getvalue(), stderr.getvalue()

    def test_plan_prints_execution_graph(self) -> None:
        exit_code, output, _ = self._run("plan", str(self.project_file))

        self.assertEqual(exit_code, 0)
        plan = json.loads(output)
        names = [step["name"] for step in plan["steps"]]
        self.assertIn("_demo.helper", names)
        self.assertIn("_demo.tool", names)
        self.assertEqual(plan["dependencies"]["demo.tool"], ["demo.helper"])

    def test_build_dry_run_lists_compile_commands(self) -> None:
        exit_code, output, _ = self._run("build", str(self.project_file), "--dry-run")

        self.assertEqual(exit_code, 0)
        lines = [line for line in output.splitlines() if line.startswith("[dry-run]")]
        self.assertTrue(lines)
        self.assertTrue(all("Compiling" in line for line in lines))
        self.assertIn("[INFO] Executed", output)

        configured = self.workspace / "build" / "lib" / "python" / "demo" / "helper.py"
        self.assertEqual(configured.read_text(), "NAME = 'Demo'\n")

    def test_exports_lists_exported_targets(self) -> None:
        exit_code, output, _ = self._run("exports", str(self.project_file))

        self.assertEqual(exit_code, 0)
        manifest = json.loads(output)
        self.assertEqual([entry["uid"] for entry in manifest["main"]], ["demo.helper", "demo.tool"])
        self.assertEqual(manifest["test"], [])

    def test_target_errors_are_reported(self) -> None:
        self.project_file.write_text(
            textwrap.dedent(PROJECT)
            + textwrap.dedent(
                """
                [[targets]]
                name = "tool"
                type = "script"
                sources = ["helper.py"]
                """
            )
        )

        exit_code, output, errors = self._run("plan", str(self.project_file))

        self.assertEqual(exit_code, 1)
        self.assertEqual(output, "")
        self.assertIn("[ERROR]", errors)
        self.assertIn("tool", errors)


    def test_configuration_errors_are_reported(self) -> None:
        broken = {
            "unknown option": textwrap.dedent(PROJECT) + '\n[[targets]]\nname = "x"\nsources = ["tool.sh"]\nshiny = true\n',
            "missing name": textwrap.dedent(PROJECT) + '\n[[targets]]\nsources = ["tool.sh"]\n',
            "bad matching": '[project]\nname = "Demo"\n[global]\ndependency_matching = "fuzzy"\n',
            "bad targets": 'targets = 3\n[project]\nname = "Demo"\n',
        }
        for label, text in broken.items():
            with self.subTest(label=label):
                self.project_file.write_text(text)
                exit_code, output, errors = self._run("plan", str(self.project_file))
                self.assertEqual(exit_code, 1)
                self.assertEqual(output, "")
                self.assertIn("[ERROR] Invalid project configuration", errors)

        exit_code, _, errors = self._run("exports", str(self.workspace / "missing.toml"))
        self.assertEqual(exit_code, 1)
        self.assertIn("[ERROR]", errors)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
