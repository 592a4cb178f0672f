from kinograph.analysis.labels import (
    ParsedLabel,
    format_label,
    label_from_fields,
    parse_label,
    role_from_label,
)


def test_colon_dialect():
    p = parse_label("237:A.O:ASP:861")
    assert (p.serial, p.chain, p.atom_name, p.res_name, p.resno) == ("237", "A", "O", "ASP", "861")
    assert p.dialect == "colon"
    assert p.is_structured


def test_slash_dialect_full_and_partial():
    p = parse_label("R/153/SER/OG/76")
    assert (p.chain, p.resno, p.res_name, p.atom_name, p.serial) == ("R", "153", "SER", "OG", "76")
    short = parse_label("A/503")
    assert (short.chain, short.resno, short.serial) == ("A", "503", None)
    assert short.dialect == "slash"


def test_slash_dialect_non_digit_serial_dropped():
    p = parse_label("R/153/SER/OG/x7")
    assert p.serial is None
    assert p.atom_name == "OG"


def test_bare_integer_is_serial():
    assert parse_label("42").serial == "42"
    assert parse_label(42).serial == "42"


def test_residue_fallbacks():
    assert parse_label("503:A").residue_key == ("A", "503")
    assert parse_label("A 503").residue_key == ("A", "503")


def test_unparseable_never_raises():
    assert parse_label("???") == ParsedLabel()
    assert parse_label(None) == ParsedLabel()
    assert parse_label("") == ParsedLabel()
    assert parse_label(True) == ParsedLabel()


def test_role_prefers_structured_chain():
    assert role_from_label("10:B.N:ALA:3") == "B"
    assert role_from_label("R/153/SER/OG/76") == "R"
    assert role_from_label("7xyz") == "x"
    assert role_from_label("") == ""


def test_format_label_roundtrips_slash():
    assert format_label(parse_label("R/153/SER/OG/76")) == "R/153/SER/OG/76"
    assert format_label(parse_label("237:A.O:ASP:861")) == "A/861/ASP/O/237"
    assert format_label(parse_label("A/503"), role="L") == "L/503"


def test_label_from_fields_aliases():
    raw = {"chain": "A", "resi": 10, "resn": "ALA", "name": "CA", "serial": 5}
    assert label_from_fields(raw) == "A/10/ALA/CA/5"
    assert label_from_fields({"serial": "x"}) is None
    assert label_from_fields({}) is None
