from coupongen.tenancy import SLUG_MAX_LENGTH, referer_slug, to_slug


def test_slug_strips_diacritics_and_collapses_separators():
    assert to_slug("Caffè  Milano!") == "caffe-milano"
    assert to_slug("  --Pizzería  Öst-- ") == "pizzeria-ost"


def test_slug_fallback_and_length():
    assert to_slug("") == "tenant"
    assert to_slug(None) == "tenant"
    assert to_slug("!!!") == "tenant"
    assert len(to_slug("a" * 200)) == SLUG_MAX_LENGTH


def test_referer_slug():
    assert referer_slug("https://shop.example/t/acme/form?x=1") == "acme"
    assert referer_slug("https://shop.example/other") is None
    assert referer_slug(None) is None
