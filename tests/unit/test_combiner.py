"""
Unit tests for combining resolved files.
"""

import pytest

from comboserver.combo.combiner import combine, read_file
from comboserver.combo.descriptor import RequestDescriptor
from comboserver.combo.errors import ContentReadError, MinificationError
from comboserver.combo.minify import MinifyOptions
from comboserver.combo.resolver import ResolvedFile, ResolvedFileSet, resolve_files
from comboserver.http.mime_types import MimeType

from conftest import write_file


def resolve(config, mime_type, *names):
    descriptor = RequestDescriptor(
        mime_type=mime_type,
        resource_names=tuple(names),
        extension=mime_type.extension,
    )
    return resolve_files(descriptor, config)


class TestConcatenation:
    """Tests for combining without minification."""

    def test_files_joined_with_newline(self, make_config):
        """Test that files are concatenated in order, newline separated."""
        file_set = resolve(make_config(), MimeType.CSS, "b", "a")

        assert combine(file_set, MimeType.CSS, False) == (
            b".b { color: blue; }\n.a { color: red; }"
        )

    def test_bytes_are_untouched(self, tmp_path):
        """Test that content passes through byte-for-byte."""
        path = tmp_path / "raw.js"
        path.write_bytes(b"var s = '\xff';\r\n")
        file_set = ResolvedFileSet(files=(ResolvedFile(path=path, mtime=1.0),))

        assert combine(file_set, MimeType.JS, False) == b"var s = '\xff';\r\n"

    def test_empty_set(self):
        """Test that no files give an empty payload."""
        assert combine(ResolvedFileSet(files=()), MimeType.CSS, False) == b""
        assert combine(ResolvedFileSet(files=()), MimeType.CSS, True) == b""

    def test_invalid_source_not_checked(self, tmp_path):
        """Test that malformed files combine fine when not minifying."""
        path = write_file(tmp_path / "broken.css", ".a { /* open")
        file_set = ResolvedFileSet(files=(ResolvedFile(path=path, mtime=1.0),))

        assert combine(file_set, MimeType.CSS, False) == b".a { /* open"

    def test_unreadable_file(self, tmp_path):
        """Test that a vanished file is a ContentReadError."""
        missing = tmp_path / "gone.css"
        file_set = ResolvedFileSet(files=(ResolvedFile(path=missing, mtime=1.0),))

        with pytest.raises(ContentReadError) as exc_info:
            combine(file_set, MimeType.CSS, False)

        assert exc_info.value.status_code == 400
        assert "gone.css" in str(exc_info.value)

    def test_read_file(self, tmp_path):
        """Test reading a single file."""
        path = write_file(tmp_path / "x.css", "x")
        assert read_file(path) == b"x"


class TestMinifiedCombine:
    """Tests for combining with minification."""

    def test_css_minified_together(self, make_config):
        """Test that plain files are minified as one run."""
        file_set = resolve(make_config(), MimeType.CSS, "a", "b")

        assert combine(file_set, MimeType.CSS, True) == b".a{color:red}.b{color:blue}"

    def test_js_minified(self, make_config):
        """Test the script transform is selected for JS."""
        file_set = resolve(make_config(), MimeType.JS, "one", "two")

        assert combine(file_set, MimeType.JS, True) == (
            b"var one=1;function two(){return 2}"
        )

    def test_omitted_file_copied_verbatim(self, make_config):
        """Test that *.min.css is not run through the transform."""
        file_set = resolve(make_config(), MimeType.CSS, "a", "b", "c.min")

        assert combine(file_set, MimeType.CSS, True) == (
            b".a{color:red}.b{color:blue}\n.c{color:green}"
        )

    def test_order_preserved_around_omitted_file(self, make_config):
        """Test that an omitted file in the middle stays in the middle."""
        file_set = resolve(make_config(), MimeType.CSS, "a", "c.min", "b")

        assert combine(file_set, MimeType.CSS, True) == (
            b".a{color:red}\n.c{color:green}\n.b{color:blue}"
        )

    def test_omitted_file_first(self, make_config):
        """Test an omitted file at the start."""
        file_set = resolve(make_config(), MimeType.CSS, "c.min", "a")

        assert combine(file_set, MimeType.CSS, True) == b".c{color:green}\n.a{color:red}"

    def test_omitted_file_is_not_reformatted(self, tmp_path):
        """Test that verbatim really means verbatim."""
        vendor = write_file(tmp_path / "vendor.min.js", "var  x = 1 ;  // keep\n")
        file_set = ResolvedFileSet(files=(ResolvedFile(path=vendor, mtime=1.0),))

        assert combine(file_set, MimeType.JS, True) == b"var  x = 1 ;  // keep\n"

    def test_custom_omit_pattern(self, make_config):
        """Test a pattern that matches a different file."""
        options = MinifyOptions(omit_pattern=r"^a\.css$")
        file_set = resolve(make_config(), MimeType.CSS, "a", "b")

        assert combine(file_set, MimeType.CSS, True, options) == (
            b".a { color: red; }\n.b{color:blue}"
        )

    def test_empty_omit_pattern_minifies_everything(self, make_config):
        """Test that an empty pattern omits nothing."""
        options = MinifyOptions(omit_pattern="")
        file_set = resolve(make_config(), MimeType.CSS, "a", "c.min")

        assert combine(file_set, MimeType.CSS, True, options) == (
            b".a{color:red}.c{color:green}"
        )

    def test_invalid_omit_pattern(self, make_config):
        """Test that a broken regex fails the combine."""
        options = MinifyOptions(omit_pattern="(")
        file_set = resolve(make_config(), MimeType.CSS, "a")

        with pytest.raises(MinificationError):
            combine(file_set, MimeType.CSS, True, options)

    def test_transform_failure(self, tmp_path):
        """Test that a transform error fails the whole combine."""
        good = write_file(tmp_path / "good.css", ".a { x: y }")
        bad = write_file(tmp_path / "bad.css", ".b { /* open")
        file_set = ResolvedFileSet(files=(
            ResolvedFile(path=good, mtime=1.0),
            ResolvedFile(path=bad, mtime=1.0),
        ))

        with pytest.raises(MinificationError):
            combine(file_set, MimeType.CSS, True)

    def test_unexpected_transform_error_wrapped(self, make_config, monkeypatch):
        """Test that a crashing transform surfaces as MinificationError."""
        from comboserver.combo import combiner

        def explode(source, options):
            raise RuntimeError("boom")

        monkeypatch.setitem(combiner.TRANSFORMS, MimeType.CSS, explode)
        file_set = resolve(make_config(), MimeType.CSS, "a")

        with pytest.raises(MinificationError) as exc_info:
            combine(file_set, MimeType.CSS, True)

        assert str(exc_info.value) == "CSS minification failed: boom"
