from linkmeta.crawler.parser import (
    STRATEGY_PATTERN,
    DefaultHTMLParser,
    find_structured_value,
    pick_first_non_empty,
)

# Minimal HTML sample for testing
SAMPLE_HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>Fallback Title</title>
    <meta property="og:title" content="Open Graph Title">
    <meta name="twitter:title" content="Card Title">
    <meta name="description" content="A page about   things &amp; stuff.">
    <meta property="og:site_name" content="Example">
    <link rel="icon" href="/static/favicon.png">
    <link rel="apple-touch-icon" href="https://cdn.example.com/touch.png">
    <link rel="stylesheet" href="/style.css">
</head>
<body><h1>Body heading</h1></body>
</html>
"""

JSON_LD_HTML = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [{"@type": "Article", "headline": "Structured Headline",
 "description": "Structured description"}]}
</script>
</head><body></body></html>
"""


def test_parser_extraction():
    parser = DefaultHTMLParser()
    url = "https://example.com/articles/1"

    result = parser.extract(url, SAMPLE_HTML)

    # 1. Title priority: og:title wins
    assert result["title"] == "Open Graph Title"

    # 2. Description is sanitized
    assert result["description"] == "A page about things & stuff."

    # 3. Site name
    assert result["site_name"] == "Example"

    # 4. Icons resolved against the page URL, stylesheets ignored
    assert result["icons"] == [
        "https://example.com/static/favicon.png",
        "https://cdn.example.com/touch.png",
    ]


def test_title_candidates_keep_priority_order():
    parser = DefaultHTMLParser()

    candidates = parser.parse("https://example.com", SAMPLE_HTML)

    assert candidates["titles"][:3] == ["Open Graph Title", "Card Title", "Fallback Title"]


def test_falls_through_blank_candidates():
    html = '<html><head><meta property="og:title" content="   "><title> Real\n Title </title></head></html>'

    result = DefaultHTMLParser().extract("https://example.com", html)

    assert result["title"] == "Real Title"


def test_structured_data_is_lowest_priority_candidate():
    parser = DefaultHTMLParser()

    result = parser.extract("https://example.com", JSON_LD_HTML)
    assert result["title"] == "Structured Headline"
    assert result["description"] == "Structured description"

    # A meta description beats the structured one
    html = JSON_LD_HTML.replace("<head>", '<head><meta name="description" content="Meta wins">')
    assert parser.extract("https://example.com", html)["description"] == "Meta wins"


def test_conventional_icon_when_page_declares_none():
    result = DefaultHTMLParser().extract("https://www.example.com/a/b?c=d", "<html><head></head></html>")

    assert result["icons"] == ["https://www.example.com/favicon.ico"]
    assert result["title"] is None
    assert result["description"] is None


def test_inline_image_icons_are_kept():
    data_url = "data:image/png;base64,iVBORw0KGgo="
    html = f'<html><head><link rel="icon" href="{data_url}"><link rel="icon" href="javascript:void(0)"></head></html>'

    assert DefaultHTMLParser().extract("https://example.com", html)["icons"] == [data_url]
    assert DefaultHTMLParser(features="no-such-tree-builder").extract("https://example.com", html)["icons"] == [data_url]


def test_pattern_fallback_when_builder_unavailable():
    parser = DefaultHTMLParser(features="no-such-tree-builder")
    html = """
    <html><head>
    <title>Regex &amp; Title</title>
    <meta content="Reversed attribute order" name="description">
    <link href="/icon.svg" rel="icon">
    </head></html>
    """

    candidates = parser.parse("https://example.com/page", html)
    result = parser.extract("https://example.com/page", html)

    assert candidates["strategy"] == STRATEGY_PATTERN
    assert result["title"] == "Regex & Title"
    assert result["description"] == "Reversed attribute order"
    assert result["icons"] == ["https://example.com/icon.svg"]


def test_parse_never_raises_on_garbage():
    parser = DefaultHTMLParser()

    for content in (None, "", "<<<>>>", '<script type="application/ld+json">{not json</script>'):
        result = parser.extract("https://example.com", content)
        assert result["title"] is None
        assert result["icons"] == ["https://example.com/favicon.ico"]


def test_pick_first_non_empty():
    assert pick_first_non_empty([None, "", "  ", "<b></b>", " first ", "second"]) == "first"
    assert pick_first_non_empty([None, " "]) is None


def test_find_structured_value_searches_nested_lists():
    data = [{"@type": "WebSite", "url": "x"}, {"items": [{"summary": "Deep summary"}]}]

    assert find_structured_value(data, ("description", "summary")) == "Deep summary"
    assert find_structured_value(data, ("headline",)) is None
