import pytest
from pkgmake import expand_pathname_template


def filenames(result):
    return [fp.filename for fp in result]


def test_scalar_substitution():
    result = expand_pathname_template("{name}/{name}.pc.in", {"name": "libfoo"})
    assert filenames(result) == ["libfoo/libfoo.pc.in"]
    assert result[0].params == {"name": "libfoo"}


def test_list_multiplies():
    params = {"a": ["x", "y"], "b": "m"}
    result = expand_pathname_template("{a}/{b}.c", params)
    assert filenames(result) == ["x/m.c", "y/m.c"]
    assert [fp.params["a"] for fp in result] == ["x", "y"]
    assert all(fp.params["b"] == "m" for fp in result)


def test_params_are_copied():
    params = {"a": ["x", "y"]}
    result = expand_pathname_template("{a}.c", params)
    result[0].params["extra"] = 1
    assert "extra" not in result[1].params
    assert params == {"a": ["x", "y"]}


def test_two_lists_later_varies_fastest():
    params = {"dir": ["src", "test"], "ext": ["c", "h", "cc"]}
    result = expand_pathname_template("{dir}/main.{ext}", params)
    assert filenames(result) == [
        "src/main.c", "src/main.h", "src/main.cc",
        "test/main.c", "test/main.h", "test/main.cc",
    ]
    assert (result[4].params["dir"], result[4].params["ext"]) == ("test", "h")


def test_nesting_follows_pathname_order():
    params = {"dir": ["src", "test"], "ext": ["c", "h"]}
    result = expand_pathname_template("{ext}/{dir}", params)
    assert filenames(result) == ["c/src", "c/test", "h/src", "h/test"]


def test_repeated_list_placeholder_multiplies_again():
    result = expand_pathname_template("{a}/{a}.c", {"a": ["x", "y"]})
    assert filenames(result) == ["x/x.c", "x/y.c", "y/x.c", "y/y.c"]
    assert [fp.params["a"] for fp in result] == ["x", "y", "x", "y"]


def test_repeated_list_placeholder_with_other_list():
    params = {"a": ["x", "y"], "b": ["1", "2", "3"]}
    result = expand_pathname_template("{a}-{b}/{a}", params)
    assert len(result) == 12
    assert filenames(result)[:4] == ["x-1/x", "x-1/y", "x-2/x", "x-2/y"]


@pytest.mark.parametrize("pathname", ["{a}/file", "{a}/{b}", "{b}/{a}"])
def test_empty_list_gives_nothing(pathname):
    assert expand_pathname_template(pathname, {"a": [], "b": ["x", "y"]}) == []


def test_unreferenced_list_does_not_multiply():
    result = expand_pathname_template("Makefile.am", {"sources": ["a.c", "b.c"]})
    assert filenames(result) == ["Makefile.am"]
    assert result[0].params["sources"] == ["a.c", "b.c"]


def test_other_values_use_str():
    assert filenames(expand_pathname_template("v{major}", {"major": 3})) == ["v3"]


def test_unknown_placeholder_is_kept():
    assert filenames(expand_pathname_template("{unknown}.in", {})) == ["{unknown}.in"]
