import pytest
from functools import partial
from pkgmake import (
    BUILTIN_TEMPLATES,
    FileTemplate,
    TemplateExecutionError,
    TemplateSyntaxError,
    ValidationError,
    execute_file_template,
    filter_file_list,
    lib_name,
    load_template_dir,
    make_template_environment,
    project_templates,
    var_name,
    var_name_uc,
)

SOURCE_FILES = {"src/main.c", "src/util.c", "src/util.h", "src/sub/extra.c", "README"}


@pytest.fixture
def env():
    return make_template_environment(file_list=partial(filter_file_list, SOURCE_FILES))


def test_var_name():
    assert var_name("libfoo-bar") == "libfoo_bar"
    assert var_name("g++.so") == "gxx_so"


def test_var_name_uc():
    assert var_name_uc("libfoo-bar") == "LIBFOO_BAR"
    assert var_name_uc("g++") == "GXX"


def test_lib_name():
    assert lib_name("foo+bar-1.2") == "foo+bar-1.2"
    assert lib_name("foo bar/baz") == "foo_bar_baz"


def test_filter_file_list():
    assert filter_file_list(SOURCE_FILES, "src", "*.c") == ["main.c", "sub/extra.c", "util.c"]
    assert filter_file_list(SOURCE_FILES, "src/", "*.h") == ["util.h"]
    assert filter_file_list(SOURCE_FILES, "missing", "*") == []


def test_filter_file_list_whole_tree():
    assert filter_file_list(SOURCE_FILES, ".", "README") == ["README"]


def test_render_with_helpers(env):
    template = FileTemplate(
        "{name}.txt", 0o644,
        "{{ name | var_name_uc }}:{% for f in file_list('src', '*.c') %} {{ f }}{% endfor %}\n"
        "{{ string_list('a', 'b') | join(',') }}\n",
    )
    result = execute_file_template(template, {"name": "lib-x"}, env)
    assert result == [("lib-x.txt", "LIB_X: main.c sub/extra.c util.c\na,b\n")]


def test_render_once_per_expansion(env):
    template = FileTemplate("{mod}.c", 0o644, "/* {{ mod }} of {{ mods | join(' ') }} */\n")
    result = execute_file_template(template, {"mod": ["a", "b"], "mods": ["a", "b"]}, env)
    assert result == [("a.c", "/* a of a b */\n"), ("b.c", "/* b of a b */\n")]


def test_error_helper(env):
    template = FileTemplate("conf", 0o644, "{{ error('no sources for ' ~ name) }}")
    with pytest.raises(TemplateExecutionError, match="conf: no sources for foo"):
        execute_file_template(template, {"name": "foo"}, env)


def test_undefined_variable(env):
    template = FileTemplate("conf", 0o644, "{{ missing }}")
    with pytest.raises(TemplateExecutionError, match="missing"):
        execute_file_template(template, {}, env)


@pytest.mark.parametrize("contents", ["{{ n // d }}", "{{ items.pop() }}"])
def test_runtime_failure_names_file(env, contents):
    template = FileTemplate("{name}.conf", 0o644, contents)
    with pytest.raises(TemplateExecutionError, match="^foo.conf: "):
        execute_file_template(template, {"name": "foo", "n": 1, "d": 0, "items": []}, env)


def test_syntax_error(env):
    template = FileTemplate("conf", 0o644, "{% for x in %}")
    with pytest.raises(TemplateSyntaxError, match="^conf:1:"):
        execute_file_template(template, {}, env)


def test_syntax_error_reported_without_expansions(env):
    template = FileTemplate("{a}", 0o644, "{% if %}")
    with pytest.raises(TemplateSyntaxError):
        execute_file_template(template, {"a": []}, env)


def test_builtin_application_templates(env):
    params = {"name": "hello", "version": "1.0", "requires": ["libfoo"],
              "description": ""}
    rendered = {}
    for template in BUILTIN_TEMPLATES["application"]:
        rendered.update(execute_file_template(template, params, env))
    assert set(rendered) == {"autogen.sh", "configure.ac", "Makefile.am"}
    assert "AC_INIT([hello], [1.0])" in rendered["configure.ac"]
    assert "PKG_CHECK_MODULES([LIBFOO], [libfoo])" in rendered["configure.ac"]
    assert "bin_PROGRAMS = hello" in rendered["Makefile.am"]
    assert "\tsrc/main.c" in rendered["Makefile.am"]
    assert "hello_LDADD = $(LIBFOO_LIBS)" in rendered["Makefile.am"]


def test_builtin_application_needs_sources():
    env = make_template_environment(file_list=partial(filter_file_list, set()))
    params = {"name": "hello", "version": "1.0", "requires": [], "description": ""}
    makefile_am = [t for t in BUILTIN_TEMPLATES["application"] if t.pathname == "Makefile.am"][0]
    with pytest.raises(TemplateExecutionError, match="no sources found"):
        execute_file_template(makefile_am, params, env)


def test_builtin_library_templates(env):
    params = {"name": "libfoo", "version": "2.1", "requires": [], "description": "Foo"}
    rendered = {}
    for template in BUILTIN_TEMPLATES["library"]:
        rendered.update(execute_file_template(template, params, env))
    assert set(rendered) == {"autogen.sh", "configure.ac", "Makefile.am", "libfoo.pc.in"}
    assert "lib_LTLIBRARIES = libfoo.la" in rendered["Makefile.am"]
    assert "libfoo_la_SOURCES = \\\n\tsrc/main.c" in rendered["Makefile.am"]
    assert "Libs: -L${libdir} -lfoo" in rendered["libfoo.pc.in"]
    assert "AC_CONFIG_FILES([Makefile libfoo.pc])" in rendered["configure.ac"]


def test_project_templates_builtin():
    assert project_templates("library") == list(BUILTIN_TEMPLATES["library"])


def test_project_templates_unknown_type():
    with pytest.raises(ValidationError):
        project_templates("firmware")


def test_project_templates_local_dir(tmp_path):
    local = tmp_path / "application"
    (local / "doc").mkdir(parents=True)
    (local / "configure.ac").write_text("AC_INIT([{{ name }}])\n")
    (local / "doc" / "{name}.txt").write_text("{{ description }}\n")
    templates = project_templates("application", tmp_path)
    assert [t.pathname for t in templates] == ["configure.ac", "doc/{name}.txt"]
    assert templates[0].contents == "AC_INIT([{{ name }}])\n"


def test_project_templates_local_dir_for_other_type(tmp_path):
    (tmp_path / "application").mkdir()
    assert project_templates("library", tmp_path) == list(BUILTIN_TEMPLATES["library"])


def test_load_template_dir_keeps_mode(tmp_path):
    script = tmp_path / "autogen.sh"
    script.write_text("#!/bin/sh\n")
    script.chmod(0o755)
    assert load_template_dir(tmp_path)[0].mode == 0o755
