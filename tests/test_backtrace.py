"""Tests for structraven.backtrace."""

from __future__ import annotations

import traceback

from structraven.backtrace import Backtrace, Line, relative_path


def _in_srv_app(path: str) -> bool:
    return path.startswith("/srv/app/")


class TestLineParse:
    def test_python_traceback_line(self) -> None:
        line = Line.parse('  File "/srv/app/views.py", line 42, in index')
        assert line == Line(file="/srv/app/views.py", number=42, method="index", filename="/srv/app/views.py")

    def test_at_form_with_column(self) -> None:
        line = Line.parse("index at /srv/app/views.py:42:7")
        assert line is not None
        assert (line.method, line.file, line.number, line.column) == (
            "index",
            "/srv/app/views.py",
            42,
            7,
        )

    def test_path_first_form_strips_quotes(self) -> None:
        line = Line.parse("/srv/app/views.py:42:7 in 'index'")
        assert line is not None
        assert (line.file, line.number, line.column, line.method) == ("/srv/app/views.py", 42, 7, "index")

    def test_path_without_function(self) -> None:
        line = Line.parse("/srv/app/views.py:42")
        assert line is not None
        assert line.method is None
        assert line.column is None

    def test_unmatched_lines(self) -> None:
        assert Line.parse("Traceback (most recent call last):") is None
        assert Line.parse("    return handler(request)") is None
        assert Line.parse("            ^^^^^^^^^^^^^^^") is None
        assert Line.parse("") is None

    def test_text_without_a_path_is_not_a_frame(self) -> None:
        assert Line.parse("12:30:45") is None
        assert Line.parse("started at 12:30") is None
        assert Line.parse("views.py:42").file == "views.py"  # type: ignore[union-attr]

    def test_in_app_predicate(self) -> None:
        inside = Line.parse("/srv/app/views.py:1", in_app=_in_srv_app)
        outside = Line.parse("/usr/lib/json.py:1", in_app=_in_srv_app)
        assert inside is not None and inside.in_app is True
        assert outside is not None and outside.in_app is False

    def test_filename_relative_to_project_root(self) -> None:
        line = Line.parse("/srv/app/pkg/views.py:1", project_root="/srv/app")
        assert line is not None
        assert line.filename == "pkg/views.py"


class TestRelativePath:
    def test_outside_root_unchanged(self) -> None:
        assert relative_path("/usr/lib/json.py", "/srv/app") == "/usr/lib/json.py"

    def test_no_root(self) -> None:
        assert relative_path("/srv/app/a.py", None) == "/srv/app/a.py"


class TestBacktraceParse:
    def test_skips_unparseable_lines(self) -> None:
        backtrace = Backtrace.parse(
            [
                "handler at /srv/app/views.py:10:1",
                "garbage",
                "main at /srv/app/main.py:3:1",
            ]
        )
        assert [line.method for line in backtrace] == ["handler", "main"]

    def test_multiline_entries(self) -> None:
        entry = '  File "/srv/app/views.py", line 42, in index\n    return render()\n'
        backtrace = Backtrace.parse([entry])
        assert len(backtrace.lines) == 1

    def test_frame_summaries(self) -> None:
        summary = traceback.FrameSummary("/srv/app/views.py", 42, "index", lookup_line=False)
        backtrace = Backtrace.parse([summary], in_app=_in_srv_app, project_root="/srv/app")
        (line,) = backtrace.lines
        assert (line.file, line.number, line.method, line.in_app) == (
            "/srv/app/views.py",
            42,
            "index",
            True,
        )
        assert line.filename == "views.py"

    def test_empty(self) -> None:
        assert Backtrace.parse([]).lines == ()


def _inner() -> None:
    raise ValueError("boom")


def _outer() -> None:
    _inner()


class TestFromTraceback:
    def _traceback(self):  # type: ignore[no-untyped-def]
        try:
            _outer()
        except ValueError as exc:
            return exc.__traceback__
        raise AssertionError("unreachable")

    def test_innermost_first(self) -> None:
        backtrace = Backtrace.from_traceback(self._traceback())
        methods = [line.method for line in backtrace]
        assert methods[0] == "_inner"
        assert methods[1] == "_outer"
        assert methods[-1] == "_traceback"

    def test_columns_are_one_based(self) -> None:
        backtrace = Backtrace.from_traceback(self._traceback())
        for line in backtrace:
            assert line.column is None or line.column >= 1

    def test_none_traceback(self) -> None:
        assert Backtrace.from_traceback(None).lines == ()


class TestCoerce:
    def test_passthrough(self) -> None:
        backtrace = Backtrace()
        assert Backtrace.coerce(backtrace) is backtrace

    def test_string_split_into_lines(self) -> None:
        text = "a at /srv/app/a.py:1\nb at /srv/app/b.py:2"
        assert [line.method for line in Backtrace.coerce(text)] == ["a", "b"]

    def test_traceback_object(self) -> None:
        try:
            _inner()
        except ValueError as exc:
            backtrace = Backtrace.coerce(exc.__traceback__)
        assert backtrace.lines[0].method == "_inner"
