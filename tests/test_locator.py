import pytest

from caddy_manager.errors import CaddyfileParseError
from caddy_manager.locator import block_names, find_block, scan_blocks


SAMPLE = (
    "{\n"
    "    email admin@example.com\n"
    "}\n"
    "\n"
    "example.com {\n"
    "    reverse_proxy 127.0.0.1:8080\n"
    "}\n"
    "\n"
    "www.example.com {\n"
    "    redir https://example.com{uri}\n"
    "}\n"
)


def test_find_block_returns_full_span():
    span = find_block(SAMPLE, "example.com")
    assert span is not None
    assert span.text(SAMPLE) == "example.com {\n    reverse_proxy 127.0.0.1:8080\n}\n"
    assert span.start_line == 5
    assert span.end_line == 7
    assert span.body(SAMPLE).strip() == "reverse_proxy 127.0.0.1:8080"


def test_find_block_missing_returns_none():
    assert find_block(SAMPLE, "blog.example.com") is None


def test_find_block_does_not_match_name_prefixes():
    span = find_block(SAMPLE, "example.com")
    assert span is not None
    assert find_block(SAMPLE, "example") is None
    assert find_block(SAMPLE, "ww.example.com") is None
    assert find_block("example.com.au {\n}\n", "example.com") is None


def test_find_block_matches_name_literally():
    text = "*.example.com {\n    respond \"wild\"\n}\n"
    assert find_block(text, "*.example.com") is not None
    assert find_block(text, "..example.com") is None


def test_find_block_tolerates_surrounding_whitespace():
    text = "   example.com   {\n  respond ok\n}\n"
    span = find_block(text, "example.com")
    assert span is not None
    assert span.start == 0


def test_nested_braces_on_one_line():
    text = "app.example.com { reverse_proxy 127.0.0.1:8080 { health_checks { interval 10s } } }\n"
    span = find_block(text, "app.example.com")
    assert span is not None
    assert span.close_brace == text.rindex("}")
    assert span.end == len(text)


def test_nested_braces_across_lines():
    text = (
        "app.example.com {\n"
        "    reverse_proxy 127.0.0.1:8080 {\n"
        "        health_uri /health\n"
        "    }\n"
        "    log\n"
        "}\n"
        "other.example.com {\n"
        "    respond ok\n"
        "}\n"
    )
    span = find_block(text, "app.example.com")
    assert span is not None
    assert span.end_line == 6
    assert span.text(text).endswith("    log\n}\n")
    assert block_names(text) == ["app.example.com", "other.example.com"]


def test_braces_in_comments_and_quotes_are_ignored():
    text = (
        "# old { config\n"
        "example.com {\n"
        "    respond \"}\" 200 # closing } here\n"
        "}\n"
    )
    spans = scan_blocks(text)
    assert [span.name for span in spans] == ["example.com"]
    assert spans[0].text(text) == text[len("# old { config\n") :]


def test_placeholders_stay_balanced():
    text = "a.com {\n    redir https://b.com{uri} permanent\n}\n"
    span = find_block(text, "a.com")
    assert span is not None
    assert span.end == len(text)


def test_global_options_block_has_empty_name():
    spans = scan_blocks(SAMPLE)
    assert spans[0].name == ""
    assert block_names(SAMPLE) == ["example.com", "www.example.com"]


def test_unbalanced_braces_raise():
    with pytest.raises(CaddyfileParseError):
        scan_blocks("example.com {\n    respond ok\n")
    with pytest.raises(CaddyfileParseError):
        scan_blocks("}\n")


def test_trailing_tokens_after_close_do_not_overlap():
    text = "a.com { respond a } b.com { respond b }\n"
    spans = scan_blocks(text)
    assert [span.name for span in spans] == ["a.com", "b.com"]
    assert spans[0].end <= spans[1].start


def test_placeholders_in_site_headers_stay_in_the_name():
    text = (
        "{$DOMAIN} {\n"
        "    reverse_proxy 127.0.0.1:9000\n"
        "}\n"
        "\n"
        "http://{$HOST}:8080 {\n"
        "    redir https://{$HOST}{uri}\n"
        "}\n"
    )
    assert block_names(text) == ["{$DOMAIN}", "http://{$HOST}:8080"]
    span = find_block(text, "{$DOMAIN}")
    assert span is not None
    assert span.start == 0
    assert span.open_brace == len("{$DOMAIN} ")
    assert span.text(text) == "{$DOMAIN} {\n    reverse_proxy 127.0.0.1:9000\n}\n"


def test_unterminated_header_placeholder_raises():
    with pytest.raises(CaddyfileParseError):
        scan_blocks("{$DOMAIN {\n    respond ok\n}\n")
