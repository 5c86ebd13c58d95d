import pytest

from sitecompare.capture.sanitize import MarkupSanitizer, content_hash, normalize_attribute_value

PAGE = """
<html>
  <head><script>var t = 1712345678;</script><style>p { color: red; }</style></head>
  <body>
    <p class="a  b" aria-label="x" data-sc-id="sc-3">Hello   world</p>
    <img src="/logo.png?v=42&amp;size=2">
    <a href="/page?x=1&v=abc">link</a>
    <span data-ts="1712345678">Generated at 12:04:55</span>
  </body>
</html>
"""


@pytest.mark.unit
class TestNormalizeAttributeValue:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("/a.css?v=123", "/a.css"),
            ("/a.css?v=1&x=2", "/a.css?x=2"),
            ("/a.css?x=2&v=1", "/a.css?x=2"),
            ("/a.css?x=2&v=1&y=3", "/a.css?x=2&y=3"),
            ("/a.css?v=1&v=2&z=9", "/a.css?z=9"),
            ("/a.css?rev=1", "/a.css?rev=1"),
            ("id-1712345678", "id-<TS>"),
            ("17123456789", "17123456789"),
        ],
    )
    def test_values(self, raw: str, expected: str) -> None:
        assert normalize_attribute_value(raw) == expected


@pytest.mark.unit
class TestMarkupSanitizer:
    @pytest.fixture()
    def sanitizer(self) -> MarkupSanitizer:
        return MarkupSanitizer(
            ignore_selectors=["script", "style"],
            ignore_attributes=["^aria-"],
            ignore_text_patterns=[r"\d{2}:\d{2}:\d{2}"],
        )

    def test_removes_excluded_elements(self, sanitizer: MarkupSanitizer) -> None:
        out = sanitizer.sanitize(PAGE)
        assert "<script" not in out
        assert "<style" not in out

    def test_drops_attributes(self, sanitizer: MarkupSanitizer) -> None:
        out = sanitizer.sanitize(PAGE)
        assert "aria-label" not in out
        assert "data-sc-id" not in out
        assert 'class="a b"' in out

    def test_normalizes_values_and_text(self, sanitizer: MarkupSanitizer) -> None:
        out = sanitizer.sanitize(PAGE)
        assert 'href="/page?x=1"' in out
        assert "v=42" not in out
        assert "1712345678" not in out
        assert "Generated at __VAR__" in out
        assert "Hello world" in out

    def test_whitespace_collapsed(self, sanitizer: MarkupSanitizer) -> None:
        out = sanitizer.sanitize(PAGE)
        assert "  " not in out
        assert "\n" not in out

    def test_sanitization_is_idempotent(self, sanitizer: MarkupSanitizer) -> None:
        once, hash_once = sanitizer.sanitize_and_hash(PAGE)
        twice, hash_twice = sanitizer.sanitize_and_hash(once)
        assert hash_once == hash_twice
        assert once == twice

    def test_same_page_different_noise_same_hash(self, sanitizer: MarkupSanitizer) -> None:
        other = PAGE.replace("1712345678", "1799999999").replace("v=42", "v=43")
        other = other.replace("sc-3", "sc-9").replace("12:04:55", "08:00:01")
        assert sanitizer.sanitize_and_hash(PAGE)[1] == sanitizer.sanitize_and_hash(other)[1]

    def test_real_change_changes_hash(self, sanitizer: MarkupSanitizer) -> None:
        other = PAGE.replace("Hello", "Goodbye")
        assert sanitizer.sanitize_and_hash(PAGE)[1] != sanitizer.sanitize_and_hash(other)[1]

    def test_invalid_selector_is_skipped(self) -> None:
        sanitizer = MarkupSanitizer(ignore_selectors=["p[", "script"])
        out = sanitizer.sanitize("<p>kept</p><script>x</script>")
        assert out == "<p>kept</p>"

    def test_hash_uses_nfc(self) -> None:
        assert content_hash("cafe\u0301") == content_hash("caf\u00e9")
