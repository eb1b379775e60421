from TypstBlocks import markers


def test_token_roundtrip():
    token = markers.encode(markers.TABLE, {"caption": "Résumé", "rows": 2})
    assert token.startswith("/*TABLE:")
    assert token.endswith("*/")
    line = "#table()" + token
    assert markers.has_token(markers.TABLE, line)
    assert markers.decode(markers.TABLE, line) == {"caption": "Résumé", "rows": 2}


def test_undecodable_payload():
    assert markers.decode(markers.IMAGE, "/*IMAGE:@@@*/") is None
    assert markers.decode(markers.IMAGE, "no token here") is None
    assert markers.decode_payload("bm90IGpzb24=") is None


def test_strip_removes_only_the_tag():
    line = "x" + markers.encode(markers.CHART, {}) + markers.encode(markers.IMAGE, {})
    stripped = markers.strip(markers.CHART, line)
    assert not markers.has_token(markers.CHART, stripped)
    assert markers.has_token(markers.IMAGE, stripped)
