import pytest

from apps.workers.extractors import (
    DEFAULT_CONFIG,
    ExtractorConfig,
    ImageExtractor,
    decode_entities,
    extract_first_image,
    extract_thumbnail_url,
    from_bare_urls,
    from_figure,
    from_img_tags,
    from_srcset,
)


@pytest.mark.parametrize("markup", [None, "", "   \n\t  ", 123])
def test_empty_or_absent_input(markup):
    assert extract_first_image(markup) is None


def test_only_data_uri_images():
    html = '<p>x</p><img src="data:image/png;base64,iVBORw0KGgo="><img src=\'data:image/gif;base64,R0lG\'>'
    assert extract_first_image(html) is None


def test_only_blocked_images():
    html = (
        '<img src="https://cdn.example.com/tracking-pixel.gif">'
        '<img src="https://example.com/images/spacer.gif">'
        '<p>https://example.com/img/SPACER.GIF</p>'
    )
    assert extract_first_image(html) is None


def test_first_img_wins():
    assert extract_first_image('<img src="a.png"><img src="b.png">') == "a.png"


def test_skips_rejected_img_and_takes_next():
    html = (
        '<img src="https://example.com/beacon.png">'
        '<img src="https://example.com/icon.png" width="16" height="16">'
        '<img src="https://example.com/hero.png" width="1200">'
    )
    assert extract_first_image(html) == "https://example.com/hero.png"


def test_declared_small_width_rejects_tag():
    html = '<img src="https://example.com/photo.jpg" width="50">'
    assert from_img_tags(html, DEFAULT_CONFIG) is None
    # no extension, so the bare-url pass cannot pick it up either
    assert extract_first_image('<img src="https://example.com/img?id=1" width="50">') is None


def test_width_without_height_is_accepted():
    html = '<img src="https://example.com/img?id=2" width="150">'
    assert extract_first_image(html) == "https://example.com/img?id=2"


def test_height_checked_independently():
    html = '<img src="https://example.com/img?id=3" width="600" height="40">'
    assert from_img_tags(html, DEFAULT_CONFIG) is None


def test_threshold_boundary():
    assert extract_first_image('<img src="x.png" width="100" height="100">') == "x.png"
    assert extract_first_image('<img src="x.png" width="99">') is None

    strict = ExtractorConfig(min_dimension=200)
    assert extract_first_image('<img src="x.png" width="150">', strict) is None
    assert extract_first_image('<img src="x.png" width="200">', strict) == "x.png"


def test_data_src_used_when_src_missing():
    html = '<img data-src="https://example.com/lazy.jpg" alt="lazy">'
    assert extract_first_image(html) == "https://example.com/lazy.jpg"


def test_figure_without_size_check():
    # the inline pass rejects the small tag, the figure pass does not look at size
    html = '<figure class="wp-block-image"><img src="c.jpg" width="40"></figure>'
    assert from_img_tags(html, DEFAULT_CONFIG) is None
    assert extract_first_image(html) == "c.jpg"


def test_figure_spans_newlines_and_case():
    html = (
        "<FIGURE class='lead'>\n  <span>caption</span>\n"
        "  <IMG class='a' src='https://example.com/c.jpg' height='20'>\n</FIGURE>"
    )
    cand = from_figure(html, DEFAULT_CONFIG)
    assert cand is not None and cand.url == "https://example.com/c.jpg"
    assert extract_first_image(html) == "https://example.com/c.jpg"


def test_figure_blocked_falls_through():
    html = '<picture><img src="https://example.com/placeholder.jpg" width="10"></picture>'
    assert from_figure(html, DEFAULT_CONFIG) is None
    assert extract_first_image(html) is None


def test_srcset_first_candidate():
    assert extract_first_image('srcset="d.jpg 400w, e.jpg 800w"') == "d.jpg"
    assert extract_first_image('<source srcset="d.jpg 400w, e.jpg 800w">') == "d.jpg"
    # <img> with only srcset has no src; the srcset pass still finds it
    assert extract_first_image("<img srcset='d.jpg 1x, e.jpg 2x'>") == "d.jpg"


def test_srcset_rejections():
    assert from_srcset('srcset="https://example.com/1x1.png 1x"', DEFAULT_CONFIG) is None
    assert from_srcset('srcset="data:image/gif;base64,R0lG 1x"', DEFAULT_CONFIG) is None


def test_srcset_beats_bare_url():
    html = '<p>https://example.com/bare.jpg</p><source srcset="https://example.com/set.jpg 1x">'
    assert extract_first_image(html) == "https://example.com/set.jpg"


def test_bare_url_in_plain_text():
    assert extract_first_image("see https://x.com/photo.webp here") == "https://x.com/photo.webp"


def test_bare_url_skips_blocked_and_keeps_order():
    text = "http://a.com/analytics.gif then HTTP://b.com/Cover.JPEG and https://c.com/d.png"
    assert extract_first_image(text) == "HTTP://b.com/Cover.JPEG"


def test_bare_url_is_literal():
    # no query stripping: the longest match ending in an image extension
    cand = from_bare_urls("https://e.com/a.jpg?w=1.png end", DEFAULT_CONFIG)
    assert cand is not None and cand.url == "https://e.com/a.jpg?w=1.png"


def test_entity_encoded_markup_matches_literal():
    encoded = "&lt;img src=&quot;f.png&quot;&gt;"
    assert extract_first_image(encoded) == extract_first_image('<img src="f.png">') == "f.png"
    assert extract_first_image("&lt;img src=&#39;f2.png&#39;&gt;") == "f2.png"


def test_entities_decoded_once():
    assert decode_entities("&amp;lt;b&amp;gt;") == "&lt;b&gt;"
    assert extract_first_image("&amp;lt;img src=&quot;h.png&quot;&amp;gt;") is None
    html = '<img src="https://e.com/i.jpg?a=1&amp;b=2">'
    assert extract_first_image(html) == "https://e.com/i.jpg?a=1&b=2"


def test_custom_block_patterns_are_case_insensitive():
    config = ExtractorConfig(block_patterns=("  Logo ", ""))
    assert config.block_patterns == ("logo",)
    html = '<img src="https://e.com/LOGO-main.png"><img src="https://e.com/spacer.gif">'
    assert extract_first_image(html, config) == "https://e.com/spacer.gif"


def test_extractor_with_reduced_strategies():
    extractor = ImageExtractor(strategies=[("img", from_img_tags)])
    assert extractor.extract("see https://x.com/photo.webp here") is None
    assert extractor.extract('<img src="a.png">') == "a.png"


def test_thumbnail_falls_back_to_summary():
    assert extract_thumbnail_url(None, "<img src='g.jpg'>") == "g.jpg"
    assert extract_thumbnail_url("", "<img src='g.jpg'>") == "g.jpg"
    assert extract_thumbnail_url('<img src="c.jpg">', "<img src='g.jpg'>") == "c.jpg"
    assert extract_thumbnail_url(None, None) is None


def test_thumbnail_content_wins_even_without_image():
    # content is used as soon as it is non-empty
    assert extract_thumbnail_url("<p>text only</p>", "<img src='g.jpg'>") is None


def test_thumbnail_through_proxy():
    url = extract_thumbnail_url(
        '<img src="https://e.com/a.jpg">', None, proxy_base="https://wsrv.nl/", width=64, height=48
    )
    assert url == "https://wsrv.nl/?url=https%3A%2F%2Fe.com%2Fa.jpg&w=64&h=48"


def test_size_attributes_read_ascii_digits_only():
    # full-width digits are not a declared size
    html = '<img src="https://example.com/img?id=4" width="５０">'
    assert from_img_tags(html, DEFAULT_CONFIG).url == "https://example.com/img?id=4"


def test_srcset_data_uri_never_returned():
    html = 'srcset="data:image/gif;base64,R0lG 1x" https://example.com/after.png'
    assert extract_first_image(html) == "https://example.com/after.png"
    assert extract_first_image('srcset="data:image/gif;base64,R0lG 1x"') is None
