import pytest

from trunkkit.versioning import (
    Version,
    VersionMismatchError,
    VersionReq,
    enforce_version_with,
    parse_requirement,
    parse_version,
)


@pytest.mark.parametrize(
    "required, actual, expected",
    [
        ("*", "0.19.0", True),
        ("*", "0.19.0-alpha.1", True),
        ("0.19", "0.19.0", True),
        ("0.19.0", "0.19.0", True),
        ("0.19.0", "0.19.1", True),
        ("0.20.0", "0.19.0", False),
        ("0.19.0-alpha.2", "0.19.0-alpha.1", False),
        ("0.19.0-alpha.2", "0.19.0-alpha.2", True),
        ("0.19.0-alpha.2", "0.19.0-alpha.3", True),
        ("0.19.0-alpha.2", "0.19.0", True),
        ("0.19.0-alpha.2", "0.19.1", True),
        ("0.19.0-alpha.2", "0.20.0", False),
        ("0.19.1", "0.19.0", False),
        ("0.19.1", "0.19.0-alpha.1", False),
        ("0.19.1", "0.19.1-alpha.1", False),
        ("0.20.0", "0.19.0-alpha.1", False),
        ("0.20.0", "0.19.0", False),
        ("0.20.0", "0.19.1-alpha.1", False),
        ("0.20.0", "0.19.1", False),
        (">=0.19.0", "0.19.0", True),
        (">=0.19.0", "0.19.1", True),
        (">=0.19.0", "0.20.0", True),
        (">=0.19.0-alpha.2", "0.19.0-alpha.1", False),
        (">=0.19.0-alpha.2", "0.19.0-alpha.2", True),
        (">=0.19.0-alpha.2", "0.19.0-rc.1", True),
        (">=0.19.0-alpha.2", "0.19.0", True),
        (">=0.19.0-alpha.2", "0.20.0-alpha.1", False),
        (">=0.19.0-alpha.2", "0.20.0", True),
    ],
)
def test_requires(required, actual, expected):
    req = parse_requirement(required)
    ver = parse_version(actual)
    if expected:
        assert enforce_version_with(req, ver) is None
    else:
        with pytest.raises(VersionMismatchError):
            enforce_version_with(req, ver)


def test_enforce_accepts_strings_and_reports_both_versions():
    with pytest.raises(VersionMismatchError) as info:
        enforce_version_with("0.20.0", "0.19.0")
    assert "0.19.0" in str(info.value)
    assert "0.20.0" in str(info.value)


def test_star_requirement_is_star_but_rejects_prerelease_in_matches():
    req = parse_requirement("*")
    assert req.is_star()
    assert req.matches(parse_version("0.19.0"))
    assert not req.matches(parse_version("0.19.0-alpha.1"))


def test_non_star_requirement():
    assert not parse_requirement("0.19").is_star()
    assert parse_requirement("0.19, <0.19.1").matches(parse_version("0.19.0"))
    assert not parse_requirement("0.19, <0.19.1").matches(parse_version("0.19.1"))


def test_version_parse_and_str_round_trip():
    for text in ("0.19.0", "0.19.0-alpha.1", "0.19.0-rc.1+build.5"):
        assert str(parse_version(text)) == text


def test_version_fields():
    ver = parse_version("0.19.1-alpha.1")
    assert (ver.major, ver.minor, ver.patch, ver.pre) == (0, 19, 1, ("alpha", "1"))
    assert ver.is_prerelease()
    assert not parse_version("0.19.1").is_prerelease()


def test_version_ordering():
    assert parse_version("0.19.0-alpha.1") < parse_version("0.19.0-alpha.2")
    assert parse_version("0.19.0-alpha.2") < parse_version("0.19.0-rc.1")
    assert parse_version("0.19.0-rc.1") < parse_version("0.19.0")
    assert parse_version("0.19.0") < parse_version("0.19.1")
    assert parse_version("0.19.1") < parse_version("0.20.0-alpha.1")
    assert parse_version("1.0.0-alpha.2") < parse_version("1.0.0-alpha.10")
    assert parse_version("1.0.0-alpha") < parse_version("1.0.0-alpha.1")


def test_version_equality_and_hash():
    assert parse_version("0.19.0") == Version(0, 19, 0)
    assert len({parse_version("0.19.0"), Version(0, 19, 0)}) == 1


@pytest.mark.parametrize("text", ["0.19", "01.2.3", "0.19.0-", "a.b.c", "0.19.0-01", "0.19.0+"])
def test_invalid_versions(text):
    with pytest.raises(ValueError):
        parse_version(text)


@pytest.mark.parametrize("text", ["", "  ", ">=", "0.19-alpha.1", "1.*.2", "1.2.3.4", ">=*.1"])
def test_invalid_requirements(text):
    with pytest.raises(ValueError):
        parse_requirement(text)


def test_wildcard_requirement():
    req = parse_requirement("0.19.*")
    assert req.matches(parse_version("0.19.0"))
    assert req.matches(parse_version("0.19.1"))
    assert not req.matches(parse_version("0.20.0"))


def test_empty_version_req_is_star():
    assert VersionReq().is_star()