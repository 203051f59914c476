from __future__ import annotations

import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

sys.path.insert(0, str(Path(__file__).resolve().parent))
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from fakes import TRANSPILED_PRELUDE, fake_bindgen, fake_c2rust, fake_compiler, fake_toolset  # noqa: E402
from riot_sys_build import cli  # noqa: E402
from riot_sys_build.tools import Toolset  # noqa: E402


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.compile_commands = self.root / "compile_commands.json"
        self.compile_commands.write_text(
            json.dumps([{"arguments": ["clang", "-O2", "-MD", "-c", "main.c"], "directory": ".", "file": "main.c"}]),
            encoding="utf-8",
        )
        self.environ = {
            "RIOT_COMPILE_COMMANDS_JSON": str(self.compile_commands),
            "RIOT_USEMODULE": "xtimer",
            "OUT_DIR": str(self.root / "out"),
        }

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _main(self, argv: list[str], environ: dict[str, str] | None = None) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with mock.patch.dict(os.environ, environ or {}, clear=True), redirect_stdout(stdout), redirect_stderr(stderr):
            exit_code = cli.main(argv)
        return exit_code, stdout.getvalue(), stderr.getvalue()

    def test_patch_command_writes_default_output_and_counts(self) -> None:
        source = self.root / "riot_c2rust.rs"
        source.write_text(TRANSPILED_PRELUDE, encoding="utf-8")
        report_path = self.root / "patch-report.json"

        exit_code, stdout, _ = self._main(["patch", "--input", str(source), "--report-json", str(report_path)])

        self.assertEqual(exit_code, 0)
        patched = (self.root / "riot_c2rust_replaced.rs").read_text(encoding="utf-8")
        self.assertIn("pub const unsafe fn mutex_init(", patched)
        self.assertIn("[patch] strip_libc_import: 1", stdout)
        report = json.loads(report_path.read_text(encoding="utf-8"))
        self.assertEqual(report["rules"]["calling_conventions"], 4)
        self.assertEqual(report["total_matches"], sum(report["rules"].values()))

    def test_patch_command_prints_diff(self) -> None:
        source = self.root / "raw.rs"
        source.write_text(TRANSPILED_PRELUDE, encoding="utf-8")
        output = self.root / "patched.rs"
        exit_code, stdout, _ = self._main(
            ["patch", "--input", str(source), "--output", str(output), "--print-diff"]
        )
        self.assertEqual(exit_code, 0)
        self.assertIn("-use ::libc;", stdout)
        self.assertIn("+pub const unsafe fn mutex_init(", stdout)
        self.assertTrue(output.is_file())

    def test_missing_inputs_fail_with_generic_code(self) -> None:
        exit_code, _, stderr = self._main(["generate"], {"OUT_DIR": str(self.root / "out")})
        self.assertEqual(exit_code, 2)
        self.assertIn("riot-sys-build error: Please pass in RIOT_CC", stderr)

    def test_generate_prints_directives_and_writes_report(self) -> None:
        report_path = self.root / "report.json"
        with mock.patch("riot_sys_build.pipeline.default_toolset", return_value=fake_toolset({"LED0_PIN": "1"})):
            exit_code, stdout, _ = self._main(
                ["generate", "--cargo-directives", "--report-json", str(report_path)],
                self.environ,
            )

        self.assertEqual(exit_code, 0)
        self.assertIn("cargo:CC=clang", stdout)
        self.assertIn("cargo:CFLAGS=-O2 -DMODULE_XTIMER", stdout)
        self.assertIn("cargo:rerun-if-env-changed=RIOT_COMPILE_COMMANDS_JSON", stdout)
        self.assertIn("[bindgen] wrote", stdout)
        self.assertIn("generate: bindings=", stdout)
        report = json.loads(report_path.read_text(encoding="utf-8"))
        self.assertEqual(report["environment"]["flag_sequence"], ["-O2"])
        patched = (self.root / "out" / "riot_c2rust_replaced.rs").read_text(encoding="utf-8")
        self.assertIn("pub const macro_LED_PIN: [gpio_t; 1] = [1];", patched)

    def test_overrides_win_over_environment(self) -> None:
        other_out = self.root / "elsewhere"
        with mock.patch("riot_sys_build.pipeline.default_toolset", return_value=fake_toolset()) as factory:
            exit_code, _, _ = self._main(
                ["generate", "--out-dir", str(other_out), "--bindgen", "/opt/bindgen"],
                self.environ,
            )
        self.assertEqual(exit_code, 0)
        self.assertTrue((other_out / "riot_c2rust_replaced.rs").is_file())
        factory.assert_called_once_with("clang", bindgen="/opt/bindgen", c2rust="c2rust")

    def test_tool_exit_code_is_propagated(self) -> None:
        toolset = Toolset(bindgen=fake_bindgen(exit_code=101), c2rust=fake_c2rust(), compiler=fake_compiler())
        with mock.patch("riot_sys_build.pipeline.default_toolset", return_value=toolset):
            exit_code, _, stderr = self._main(["generate"], self.environ)
        self.assertEqual(exit_code, 101)
        self.assertIn("bindgen failed with exit code 101", stderr)
        self.assertIn("  fatal error: 'board.h' file not found", stderr)

    def test_undefined_macro_failure_names_the_macro(self) -> None:
        toolset = Toolset(
            bindgen=fake_bindgen(),
            c2rust=fake_c2rust(exit_code=1, stderr="error: use of undeclared identifier 'GPIO_UNDEF'\n"),
            compiler=fake_compiler(),
        )
        with mock.patch("riot_sys_build.pipeline.default_toolset", return_value=toolset):
            exit_code, _, stderr = self._main(["generate"], self.environ)
        self.assertEqual(exit_code, 1)
        self.assertIn("GPIO_UNDEF did not compile for this target", stderr)

    def test_introspect_prints_environment_json(self) -> None:
        exit_code, stdout, _ = self._main(["introspect"], self.environ)
        self.assertEqual(exit_code, 0)
        payload = json.loads(stdout)
        self.assertEqual(payload["compiler_path"], "clang")
        self.assertEqual(payload["flag_sequence"], ["-O2"])
        self.assertEqual(payload["feature_defines"], ["-DMODULE_XTIMER"])
        self.assertTrue(payload["clang_family"])

    def test_explicit_inputs_through_flags(self) -> None:
        exit_code, stdout, _ = self._main(
            ["introspect", "--cc", "arm-none-eabi-gcc", "--cflags=-Os -MMD -mthumb", "--cargo-directives"]
        )
        self.assertEqual(exit_code, 0)
        self.assertIn("cargo:CC=arm-none-eabi-gcc", stdout)
        self.assertIn("cargo:CFLAGS=-Os -mthumb", stdout)
        self.assertNotIn("cargo:rerun-if-changed=" + str(self.compile_commands), stdout)

    def test_materialize_writes_synthetic_source(self) -> None:
        output = self.root / "synthetic.h"
        exit_code, stdout, _ = self._main(["materialize", "--output", str(output)])
        self.assertEqual(exit_code, 0)
        self.assertIn("static mutex_t init_MUTEX_INIT(void)", output.read_text(encoding="utf-8"))
        self.assertIn("materialize: wrote", stdout)

    def test_macros_command_reports_definedness(self) -> None:
        compiler = fake_compiler({"MUTEX_INIT": "{}", "BTN1_PIN": "3"})
        toolset = Toolset(bindgen=fake_bindgen(), c2rust=fake_c2rust(), compiler=compiler)
        with mock.patch("riot_sys_build.commands.inspection.default_toolset", return_value=toolset):
            exit_code, stdout, _ = self._main(["macros"], self.environ)
        self.assertEqual(exit_code, 0)
        self.assertIn("MUTEX_INIT: defined (init_MUTEX_INIT)", stdout)
        self.assertIn("GPIO_UNDEF: undefined (init_GPIO_UNDEF)", stdout)
        self.assertIn("BTN_PIN[1]: BTN1_PIN (macro_BTN_PIN)", stdout)
        self.assertIn("LED_PIN[0]: none (macro_LED_PIN)", stdout)


if __name__ == "__main__":
    unittest.main()
