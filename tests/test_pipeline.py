"""Tests for pass sequencing and output writing."""

from pathlib import Path

import pytest

from modsplit.config import Config
from modsplit.core import pipeline
from modsplit.core.parser import ParseError
from modsplit.core.pipeline import (
    build_main_source,
    modified_file_path,
    process_source,
    save_output,
    write_outputs,
)


class TestProcessSource:
    """Tests for process_source function."""

    def test_packed_bundle(self, packed_bundle):
        """Calls become invocations behind one require line per artifact."""
        result = process_source(packed_bundle)

        symbols = [a.symbol for a in result.artifacts]
        assert symbols == ["RegisterUtil_mjs_cjs_original", "RegisterGameManager", "RegisterButton"]

        lines = result.main_source.split("\n")
        assert lines[:3] == [a.require_statement for a in result.artifacts]
        assert lines[3] == ""

        positions = [result.main_source.index(f"{s}();") for s in symbols]
        assert positions == sorted(positions)
        assert "System.register(moduleName, [], function () {});" in result.main_source
        assert "if (true) {" in result.main_source

        assert result.stats == {
            "registration_calls": 4,
            "modules_extracted": 3,
            "calls_skipped": 1,
            "loops_reordered": 0,
            "conditions_folded": 1,
        }

    def test_bodies_round_trip(self, packed_bundle):
        """Each artifact wraps the exact call text that left the main file."""
        result = process_source(packed_bundle)

        rebuilt = packed_bundle
        for artifact in reversed(result.artifacts):
            body = packed_bundle[artifact.span.start:artifact.span.end]
            assert f"function {artifact.symbol}() {{\n    {body}\n}}" in artifact.content
            rebuilt = rebuilt[:artifact.span.start] + f"{artifact.symbol}()" + rebuilt[artifact.span.end:]

        assert result.main_source.endswith(rebuilt.replace("if (2 + 2 > 3)", "if (true)"))

    def test_conditions_inside_modules_stay(self):
        """Module bodies are copied verbatim, unfolded."""
        code = 'System.register("a.js", [], function () { if (1 > 2) { x(); } });\nif (1 > 2) { y(); }\n'
        result = process_source(code)

        assert "if (1 > 2) { x(); }" in result.artifacts[0].content
        assert result.main_source.endswith("RegisterA();\nif (false) { y(); }\n")

    def test_reorder_then_refold(self, scrambled_switch):
        """Conditions inside a reordered loop are folded on the second pass."""
        result = process_source(scrambled_switch)
        main = result.main_source

        assert "switch" not in main
        assert "/* recovered order: 3, 0, 1, 2 */" in main
        assert main.index("initEngine();") < main.index("loadAssets();") < main.index("if (false) {")
        assert main.index("if (false) {") < main.index("startGame();")
        assert result.stats["loops_reordered"] == 1
        assert result.stats["conditions_folded"] == 1

    def test_refold_counts_new_conditions_only(self):
        """Conditions folded on the first pass are not counted again."""
        code = (
            "if (2 > 1) { a(); }\n"
            "var arr = [1, 0];\n"
            "for (const k of arr) { switch (k) { case 0: b(); break; case 1: c(); break; } }\n"
        )
        result = process_source(code)

        assert result.main_source.startswith("if (true) { a(); }\n")
        assert result.stats["loops_reordered"] == 1
        assert result.stats["conditions_folded"] == 1

    def test_refold_skipped_when_reparse_fails(self, scrambled_switch, monkeypatch):
        """A reordered result that does not parse keeps its first-pass text."""
        real_parse = pipeline.parse_javascript
        calls = []

        def flaky_parse(source_code):
            calls.append(source_code)
            if len(calls) > 1:
                raise ParseError("Unexpected token")
            return real_parse(source_code)

        monkeypatch.setattr(pipeline, "parse_javascript", flaky_parse)
        result = process_source(scrambled_switch)

        assert len(calls) == 2
        assert "if (1 > 2) {" in result.main_source
        assert result.stats["conditions_folded"] == 0

    def test_passes_can_be_disabled(self, scrambled_switch):
        """Disabled passes leave their constructs alone."""
        config = Config(fold_conditions=False, reorder_switches=False)
        result = process_source(scrambled_switch, config)

        assert result.main_source == scrambled_switch
        assert result.stats["loops_reordered"] == 0
        assert result.stats["conditions_folded"] == 0

    def test_custom_registration_marker(self):
        """The callee shape and naming come from the configuration."""
        config = Config(register_object="Loader", register_property="define", symbol_prefix="Load")
        result = process_source('Loader.define("lib/core.js", f);', config)

        assert result.main_source == "const { LoadCore } = require('./core.js');\n\nLoadCore();"

    def test_no_registration_calls(self):
        """Without artifacts nothing is prepended."""
        result = process_source("var a = 1;\n")

        assert result.main_source == "var a = 1;\n"
        assert result.artifacts == []

    def test_parse_error_propagates(self):
        """Unparseable input aborts before any output exists."""
        with pytest.raises(ParseError):
            process_source("function (")


class TestOutput:
    """Tests for output helpers."""

    def test_build_main_source(self):
        """Require lines, a blank line, then the rewritten text."""
        result = process_source('System.register("x/y.js", [], f);')

        assert build_main_source("Y();", result.artifacts) == "const { RegisterY } = require('./y.js');\n\nY();"

    def test_modified_file_path(self):
        """The suffix goes between stem and extension."""
        assert modified_file_path(Path("dir/game.js")) == Path("dir/game_modified.js")
        assert modified_file_path(Path("game.min.js"), "_out") == Path("game.min_out.js")

    def test_save_output_creates_dirs(self, tmp_path):
        """Parent directories are created on demand."""
        target = tmp_path / "a" / "b" / "out.js"
        save_output("x();", target)

        assert target.read_text(encoding="utf-8") == "x();"

    def test_write_outputs(self, tmp_path, packed_bundle):
        """Artifacts land beside the input and the main file is written last."""
        input_path = tmp_path / "bundle.js"
        input_path.write_text(packed_bundle, encoding="utf-8")
        result = process_source(packed_bundle)

        written = write_outputs(input_path, result)

        assert [p.name for p in written] == [
            "util_mjs_cjs_original.js",
            "GameManager.js",
            "Button.js",
            "bundle_modified.js",
        ]
        assert (tmp_path / "bundle_modified.js").read_text(encoding="utf-8") == result.main_source
        assert input_path.read_text(encoding="utf-8") == packed_bundle

    def test_name_collision_overwrites(self, tmp_path):
        """Two modules with one name leave the later file on disk."""
        code = 'System.register("a/util.js", [], first);\nSystem.register("b/util.js", [], second);\n'
        input_path = tmp_path / "main.js"
        input_path.write_text(code, encoding="utf-8")

        result = process_source(code)
        write_outputs(input_path, result)

        assert len(result.artifacts) == 2
        assert "second" in (tmp_path / "util.js").read_text(encoding="utf-8")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["main.js", "main_modified.js", "util.js"]
