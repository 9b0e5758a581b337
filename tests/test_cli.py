import pytest

from keskit.cli import Buffer, Style, ensure, ensuref, fatal, fatalf, fg


@pytest.fixture
def no_color(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")


def test_buffer_print_spaces_only_between_non_strings():
    assert str(Buffer().print(1, 2)) == "1 2"
    assert str(Buffer().print("a", 1, "b")) == "a1b"


def test_buffer_println_always_spaces_and_newline():
    text = str(Buffer().println("a", 1))
    assert text.endswith("\n")
    assert text.rstrip("\n").split(" ") == ["a", "1"]


def test_buffer_printf_and_chaining():
    buf = Buffer().printf("%s=%d", "n", 7).print("!")
    assert str(buf) == "n=7" + "!"


def test_buffer_printf_without_args_keeps_percent():
    assert str(Buffer().printf("100%")) == "100%"


def test_buffer_write_returns_length():
    buf = Buffer()
    assert buf.write("hello") == len("hello")
    assert buf.write(b"world") == len(b"world")
    assert str(buf) == "helloworld"


def test_stylef_plain_when_color_disabled():
    style = Style(foreground="#ac0000", color=False)
    assert str(Buffer().stylef(style, "%s-%s", "x", "y")) == "x-y"


def test_styleln_appends_newline():
    style = Style(foreground=2, color=False)
    assert str(Buffer().styleln(style, "done")) == "done\n"


def test_render_with_color_wraps_in_escape_codes():
    rendered = Style(foreground="#ac0000", color=True).render("Error: ")
    assert rendered.startswith("\x1b[38;2;172;0;0m")
    assert rendered.endswith("\x1b[0m")
    assert "Error: " in rendered


def test_render_auto_respects_no_color(no_color):
    assert Style(foreground="#ac0000").render("text") == "text"


def test_render_empty_text_is_empty():
    assert Style(foreground=1, color=True).render("") == ""


def test_fg_sets_preset_value():
    style = fg(3, "Hello", "World")
    assert style.value == "Hello World"
    assert style.render("again") == "Hello World again" or "\x1b[" in style.render("again")


def test_fg_preset_rendered_by_str():
    style = fg(3, "Hello")
    assert Style(foreground=3, value="Hello", color=False).render() == "Hello"
    assert "Hello" in str(style)


def test_invalid_color_rejected():
    with pytest.raises(ValueError):
        Style(foreground="#zz")
    with pytest.raises(ValueError):
        Style(foreground=300)


def test_fatal_exits_with_code_one(no_color, capsys):
    with pytest.raises(SystemExit) as excinfo:
        fatal("boom")
    assert excinfo.value.code == 1
    assert capsys.readouterr().err == "Error: boom\n"


def test_fatalf_formats_message(no_color, capsys):
    with pytest.raises(SystemExit) as excinfo:
        fatalf("bad key '%s'", "k1")
    assert excinfo.value.code == 1
    assert capsys.readouterr().err == "Error: bad key 'k1'\n"


def test_ensure_passes_through_when_true(no_color, capsys):
    ensure(True, "never shown")
    ensuref(True, "never %s", "shown")
    assert capsys.readouterr().err == ""


def test_ensure_exits_when_false(no_color, capsys):
    with pytest.raises(SystemExit) as excinfo:
        ensure(False, "failed")
    assert excinfo.value.code == 1
    assert "failed" in capsys.readouterr().err


def test_ensuref_exits_when_false(no_color, capsys):
    with pytest.raises(SystemExit) as excinfo:
        ensuref(False, "value %d", 5)
    assert excinfo.value.code == 1
    assert capsys.readouterr().err.endswith("value 5\n")