"""Tests for placeholder protection of structured regions."""

import pytest

from core.protect import placeholder, restore_protected_blocks, strip_protected_blocks
from domain import ProtectedBlock


class TestStripProtectedBlocks:
    def test_plain_text_is_untouched(self) -> None:
        text = "She smiled. *He waved.* \"Hello,\" she said."
        stripped, blocks = strip_protected_blocks(text)
        assert stripped == text
        assert blocks == []

    def test_code_fence_with_language_tag(self) -> None:
        text = "Before\n```python\nx = 1\n```\nAfter"
        stripped, blocks = strip_protected_blocks(text)
        assert stripped == "Before\n[PROTECTED_0]\nAfter"
        assert blocks == [ProtectedBlock(0, "```python\nx = 1\n```")]

    def test_passes_run_in_order_and_indices_are_contiguous(self) -> None:
        text = "A [STATUS]hp 10[/STATUS] B <div class='x'>d</div> C ```code``` D"
        stripped, blocks = strip_protected_blocks(text)
        # fences first, then markup, then bracket blocks
        assert stripped == "A [PROTECTED_2] B [PROTECTED_1] C [PROTECTED_0] D"
        assert [b.index for b in blocks] == [0, 1, 2]
        assert blocks[0].raw == "```code```"
        assert blocks[1].raw == "<div class='x'>d</div>"
        assert blocks[2].raw == "[STATUS]hp 10[/STATUS]"
        for block in blocks:
            assert block.placeholder == placeholder(block.index)

    def test_nested_same_name_tags_close_at_outer_tag(self) -> None:
        text = "<div>outer <div>inner</div> tail</div> end"
        stripped, blocks = strip_protected_blocks(text)
        assert stripped == "[PROTECTED_0] end"
        assert blocks[0].raw == "<div>outer <div>inner</div> tail</div>"

    def test_custom_extension_tags(self) -> None:
        text = "<sim-tracker mood='ok'>x</sim-tracker> and <lumia_ooc>y</lumia_ooc>"
        stripped, blocks = strip_protected_blocks(text)
        assert stripped == "[PROTECTED_0] and [PROTECTED_1]"
        assert [b.raw for b in blocks] == ["<sim-tracker mood='ok'>x</sim-tracker>", "<lumia_ooc>y</lumia_ooc>"]

    @pytest.mark.parametrize("text", [
        "<nav-bar>x</nav-bar> tail",
        "<details-panel>x</details-panel> tail",
        "<div-x class='a'>x</div-x> tail",
        "<pre_block>x</pre_block> tail",
    ])
    def test_custom_tags_starting_with_reserved_name(self, text: str) -> None:
        stripped, blocks = strip_protected_blocks(text)
        assert stripped == "[PROTECTED_0] tail"
        assert [b.raw for b in blocks] == [text[:-len(" tail")]]

    def test_tag_names_match_case_insensitively(self) -> None:
        stripped, blocks = strip_protected_blocks("<DETAILS>x</details>")
        assert stripped == "[PROTECTED_0]"

    def test_inline_markup_is_not_protected(self) -> None:
        text = "<em>soft</em> <span>words</span> <b>bold</b>"
        stripped, blocks = strip_protected_blocks(text)
        assert stripped == text
        assert blocks == []

    def test_prefix_of_reserved_tag_is_not_matched(self) -> None:
        text = "<divider>x</divider>"
        assert strip_protected_blocks(text) == (text, [])

    def test_unclosed_block_tag_stays(self) -> None:
        text = "<div>never closed, <section>ok</section>"
        stripped, blocks = strip_protected_blocks(text)
        assert stripped == "<div>never closed, [PROTECTED_0]"
        assert blocks[0].raw == "<section>ok</section>"

    @pytest.mark.parametrize("text", [
        "[CHANGELOG]- x[/CHANGELOG]",
        "[REFINED]hello[/REFINED]",
        "[refined]hello[/refined]",
    ])
    def test_protocol_tags_are_never_stripped(self, text: str) -> None:
        assert strip_protected_blocks(text) == (text, [])

    def test_bracket_tags_are_case_insensitive(self) -> None:
        stripped, blocks = strip_protected_blocks("[Info]note[/INFO] rest")
        assert stripped == "[PROTECTED_0] rest"

    def test_fence_inside_markup_nests_placeholder(self) -> None:
        text = "<div>```x```</div>"
        stripped, blocks = strip_protected_blocks(text)
        assert stripped == "[PROTECTED_1]"
        assert blocks[1].raw == "<div>[PROTECTED_0]</div>"


class TestRestoreProtectedBlocks:
    @pytest.mark.parametrize("text", [
        "Nothing to protect here.",
        "Literal [PROTECTED_4] token without blocks",
        "",
    ])
    def test_round_trip_without_markup(self, text: str) -> None:
        stripped, blocks = strip_protected_blocks(text)
        assert restore_protected_blocks(stripped, blocks) == text

    @pytest.mark.parametrize("text", [
        "Intro\n```js\nlet a = 1;\n```\n<details><summary>s</summary>body</details>\n[STATS]x[/STATS] end",
        "<div>```x```</div> and <div>outer <div>inner</div></div>",
        "[A]one[/A][B]two[/B]",
    ])
    def test_round_trip_restores_placement(self, text: str) -> None:
        stripped, blocks = strip_protected_blocks(text)
        assert blocks
        assert restore_protected_blocks(stripped, blocks) == text

    def test_dropped_placeholder_is_appended(self) -> None:
        text = "Hello ```code``` world"
        stripped, blocks = strip_protected_blocks(text)
        restored = restore_protected_blocks("Hello there world", blocks)
        assert restored == "Hello there world\n```code```"

    def test_dropped_nested_block_appends_outer_once(self) -> None:
        stripped, blocks = strip_protected_blocks("<div>```x```</div> text")
        restored = restore_protected_blocks("text", blocks)
        assert restored == "text\n<div>```x```</div>"
        assert restored.count("```x```") == 1

    def test_reordered_placeholders_keep_content(self) -> None:
        stripped, blocks = strip_protected_blocks("```a``` mid ```b```")
        assert stripped == "[PROTECTED_0] mid [PROTECTED_1]"
        assert restore_protected_blocks("[PROTECTED_1] mid [PROTECTED_0]", blocks) == "```b``` mid ```a```"

    def test_unknown_placeholder_index_is_left_alone(self) -> None:
        blocks = [ProtectedBlock(0, "<div>x</div>")]
        assert restore_protected_blocks("[PROTECTED_0] [PROTECTED_9]", blocks) == "<div>x</div> [PROTECTED_9]"
