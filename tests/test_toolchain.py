from __future__ import annotations

import json
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from riot_sys_build import toolchain  # noqa: E402
from riot_sys_build.errors import ConfigurationError  # noqa: E402


class ToolchainIntrospectionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _write_commands(self, payload: object) -> Path:
        path = self.root / "compile_commands.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def test_flags_stop_at_compile_only_marker(self) -> None:
        path = self._write_commands([{"arguments": ["cc", "-Wall", "-O2", "-c", "in.c", "-o", "out.o"]}])
        env = toolchain.introspect(compile_commands=path, usemodule="", cc=None, cflags=None)
        self.assertEqual(env.compiler_path, "cc")
        self.assertEqual(list(env.flag_sequence), ["-Wall", "-O2"])
        self.assertEqual(env.feature_defines, ())
        self.assertEqual(env.clang_args, ["-Wall", "-O2"])

    def test_module_defines_are_normalized(self) -> None:
        path = self._write_commands([{"arguments": ["arm-none-eabi-gcc", "-Os", "-c", "main.c"]}])
        env = toolchain.introspect(
            compile_commands=path,
            usemodule="xtimer gnrc_netif periph-gpio  sock_udp",
            cc=None,
            cflags=None,
        )
        self.assertEqual(
            list(env.feature_defines),
            ["-DMODULE_XTIMER", "-DMODULE_GNRC_NETIF", "-DMODULE_PERIPH_GPIO", "-DMODULE_SOCK_UDP"],
        )
        self.assertEqual(env.clang_args[0], "-Os")

    def test_deny_list_removes_flags_and_keeps_order(self) -> None:
        flags = [
            "-MD",
            "-Wall",
            "-MF",
            "bin/main.d",
            "-Os",
            "-MTbin/main.o",
            "-fno-delayed-branch",
            "-DRIOT_BOARD=native",
            "-MMD",
            "-g",
        ]
        filtered = toolchain.filter_flags(flags)
        self.assertEqual(filtered, ["-Wall", "-Os", "-DRIOT_BOARD=native", "-g"])
        for flag in toolchain.DEFAULT_FLAG_DENY_LIST.exact:
            self.assertNotIn(flag, filtered)
        self.assertNotIn("bin/main.d", filtered)

    def test_explicit_form_uses_shell_splitting(self) -> None:
        env = toolchain.introspect(
            compile_commands=None,
            usemodule=None,
            cc="/usr/bin/clang",
            cflags="-DBOARD_NAME='\"native board\"' -MD -I/riot/core/include",
        )
        self.assertEqual(env.compiler_path, "/usr/bin/clang")
        self.assertEqual(list(env.flag_sequence), ['-DBOARD_NAME="native board"', "-I/riot/core/include"])
        self.assertTrue(env.is_clang_family())

    def test_compile_commands_win_over_explicit_values(self) -> None:
        path = self._write_commands([{"arguments": ["gcc", "-O2", "-c", "x.c"]}])
        env = toolchain.introspect(compile_commands=path, usemodule="core", cc="clang", cflags="-O0")
        self.assertEqual(env.compiler_path, "gcc")
        self.assertEqual(env.source, "compile_commands")
        self.assertFalse(env.is_clang_family())

    def test_command_string_records_are_accepted(self) -> None:
        path = self._write_commands([{"command": "gcc -std=c11 -DFOO=1 -c x.c -o x.o", "file": "x.c"}])
        env = toolchain.introspect(compile_commands=path, usemodule="", cc=None, cflags=None)
        self.assertEqual(list(env.flag_sequence), ["-std=c11", "-DFOO=1"])

    def test_missing_usemodule_is_a_configuration_error(self) -> None:
        path = self._write_commands([{"arguments": ["gcc", "-c", "x.c"]}])
        with self.assertRaisesRegex(ConfigurationError, "RIOT_USEMODULE"):
            toolchain.introspect(compile_commands=path, usemodule=None, cc=None, cflags=None)

    def test_neither_input_form_is_a_configuration_error(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "RIOT_CC"):
            toolchain.introspect(compile_commands=None, usemodule=None, cc=None, cflags=None)
        with self.assertRaisesRegex(ConfigurationError, "RIOT_CFLAGS"):
            toolchain.introspect(compile_commands=None, usemodule=None, cc="gcc", cflags=None)

    def test_unparseable_inputs_are_configuration_errors(self) -> None:
        broken = self.root / "broken.json"
        broken.write_text("[{", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            toolchain.introspect(compile_commands=broken, usemodule="", cc=None, cflags=None)

        not_a_list = self._write_commands({"arguments": ["gcc"]})
        with self.assertRaises(ConfigurationError):
            toolchain.introspect(compile_commands=not_a_list, usemodule="", cc=None, cflags=None)

        with self.assertRaisesRegex(ConfigurationError, "shell escaping"):
            toolchain.introspect(compile_commands=None, usemodule=None, cc="gcc", cflags="-DX='unterminated")

    def test_divergent_records_warn_or_fail_when_strict(self) -> None:
        path = self._write_commands(
            [
                {"arguments": ["gcc", "-O2", "-DMODULE_A", "-c", "a.c"]},
                {"arguments": ["gcc", "-O2", "-c", "b.c"]},
                {"arguments": ["gcc", "-O2", "-DMODULE_A", "-c", "c.c"]},
            ]
        )
        env = toolchain.introspect(compile_commands=path, usemodule="", cc=None, cflags=None)
        self.assertEqual(list(env.flag_sequence), ["-O2", "-DMODULE_A"])
        self.assertEqual(len(env.warnings), 1)
        self.assertIn("compile record 1", env.warnings[0])
        self.assertIn("missing -DMODULE_A", env.warnings[0])

        with self.assertRaisesRegex(ConfigurationError, "disagree"):
            toolchain.introspect(compile_commands=path, usemodule="", cc=None, cflags=None, strict_consensus=True)

    def test_records_differing_only_in_denied_flags_agree(self) -> None:
        path = self._write_commands(
            [
                {"arguments": ["gcc", "-MQ", "bin/a.o", "-MD", "-MP", "-MF", "bin/a.d", "-Os", "-c", "a.c"]},
                {"arguments": ["gcc", "-MQ", "bin/b.o", "-MD", "-MP", "-MFbin/b.d", "-Os", "-c", "b.c"]},
            ]
        )
        env = toolchain.introspect(compile_commands=path, usemodule="", cc=None, cflags=None, strict_consensus=True)
        self.assertEqual(list(env.flag_sequence), ["-Os"])
        self.assertEqual(env.warnings, ())

    def test_valued_spellings_of_denied_flags_are_removed(self) -> None:
        filtered = toolchain.filter_flags(
            ["-Wformat-overflow=2", "-Wformat-truncation=1", "-Wformat=2", "-DFOO=1", "-Wformat-overflow"]
        )
        self.assertEqual(filtered, ["-Wformat=2", "-DFOO=1"])

    def test_extended_deny_list(self) -> None:
        deny_list = toolchain.DEFAULT_FLAG_DENY_LIST.extended(exact=["-mcpu=esp32"], with_argument=["-include"])
        filtered = toolchain.filter_flags(["-mcpu=esp32", "-include", "prelude.h", "-O2"], deny_list)
        self.assertEqual(filtered, ["-O2"])
        self.assertIn("-MD", deny_list)


if __name__ == "__main__":
    unittest.main()
