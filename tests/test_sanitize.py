"""Tests for omc_modes.sanitize"""

from omc_modes.sanitize import sanitize


def test_sanitize_empty():
    assert sanitize("") == ""


def test_sanitize_keeps_plain_text_and_case():
    """Verify ordinary prose is returned unchanged."""
    assert sanitize("Ralph, Don't Stop") == "Ralph, Don't Stop"


def test_sanitize_strips_tag_block_multiline():
    text = "hello <system-reminder>\nralph ultrawork\n</system-reminder> world"
    result = sanitize(text)
    assert "ralph" not in result
    assert "hello" in result and "world" in result


def test_sanitize_strips_self_closing_tag():
    result = sanitize('before <mode name="autopilot" /> after')
    assert "autopilot" not in result
    assert "before" in result and "after" in result


def test_sanitize_strips_urls():
    result = sanitize("see https://example.com/ralph/pipeline for details")
    assert "ralph" not in result
    assert "pipeline" not in result
    assert "details" in result


def test_sanitize_strips_file_paths():
    """Verify absolute and relative paths are removed, boundary kept."""
    result = sanitize("open src/hooks/ralph.py and /tmp/ultrawork/log.txt now")
    assert "ralph" not in result
    assert "ultrawork" not in result
    assert result.startswith("open ")
    assert "now" in result


def test_sanitize_strips_quoted_path():
    result = sanitize('edit "docs/tdd/guide.md" please')
    assert "tdd" not in result
    assert "please" in result


def test_sanitize_does_not_strip_single_word():
    assert "ralph" in sanitize("ralph")


def test_sanitize_strips_code_fence():
    text = "fix this\n```\nralph()\nautopilot = True\n```\nthanks"
    result = sanitize(text)
    assert "ralph" not in result
    assert "autopilot" not in result
    assert "thanks" in result


def test_sanitize_strips_inline_code():
    result = sanitize("rename `ultrawork` variable")
    assert "ultrawork" not in result
    assert "rename" in result and "variable" in result


def test_sanitize_tag_removed_before_inline_code():
    """Verify a backtick inside a removed tag cannot pair with one outside."""
    text = "<note>` </note>keep ralph `x`"
    result = sanitize(text)
    assert "ralph" in result
    assert "`x`" not in result
