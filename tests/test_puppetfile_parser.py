"""Tests for Puppetfile parsing."""

import pytest

from constants import SourceKinds
from manifest.puppetfile import parse_content, parse_declaration, parse_file, strip_inline_comment

PUPPETFILE = """\
forge 'https://forgeapi.puppet.com'

# Forge modules
mod 'puppetlabs/stdlib', '9.4.1'
mod 'puppetlabs/concat', '7.4.0'   # pinned for apache
mod 'puppetlabs/apache'
mod "puppetlabs/ntp", :latest

mod 'custom',
  :git => 'https://github.com/acme/puppet-custom.git',
  :tag => 'v1.2.0'

mod 'profile',
  :git    => 'git@gitlab.com:acme/profile.git',
  :branch => 'develop'

mod :broken
"""


class TestParseContent:
    """Whole-file parsing."""

    @pytest.fixture
    def result(self):
        return parse_content(PUPPETFILE)

    def test_module_order_and_names(self, result):
        """Modules keep their declaration order."""
        assert [m.name for m in result.modules] == [
            "puppetlabs/stdlib",
            "puppetlabs/concat",
            "puppetlabs/apache",
            "puppetlabs/ntp",
            "custom",
            "profile",
        ]

    def test_pinned_versions(self, result):
        """The second argument is the pinned version."""
        versions = {m.name: m.exact_version for m in result.modules}
        assert versions["puppetlabs/stdlib"] == "9.4.1"
        assert versions["puppetlabs/concat"] == "7.4.0"
        assert versions["puppetlabs/apache"] is None
        assert versions["puppetlabs/ntp"] is None

    def test_origin_lines(self, result):
        """Each declaration records its line."""
        lines = {m.name: m.origin_line for m in result.modules}
        assert lines["puppetlabs/stdlib"] == 4
        assert lines["custom"] == 9

    def test_multiline_git_with_tag(self, result):
        """Continuation lines are joined."""
        custom = result.modules[4]
        assert custom.source_kind is SourceKinds.VCS
        assert custom.is_vcs
        assert custom.repo_url == "https://github.com/acme/puppet-custom.git"
        assert custom.tag == "v1.2.0"
        assert custom.ref is None
        assert custom.vcs_ref == "v1.2.0"

    def test_branch_is_a_ref(self, result):
        """A branch counts as the Git ref."""
        profile = result.modules[5]
        assert profile.repo_url == "git@gitlab.com:acme/profile.git"
        assert profile.ref == "develop"
        assert profile.vcs_ref == "develop"

    def test_errors_do_not_stop_parsing(self, result):
        """Bad lines are reported and skipped."""
        assert result.errors == ["Line 17: Invalid module declaration syntax"]

    def test_empty_content(self):
        """Empty input yields nothing."""
        result = parse_content("")
        assert result.modules == []
        assert result.errors == []


class TestParseDeclaration:
    """Single statements."""

    def test_double_quotes(self):
        """Double-quoted names parse."""
        decl = parse_declaration('mod "puppetlabs-stdlib", "4.25.1"', 3)
        assert decl.name == "puppetlabs-stdlib"
        assert decl.exact_version == "4.25.1"
        assert decl.origin_line == 3

    def test_commit_ref(self):
        """A commit counts as the Git ref."""
        decl = parse_declaration("mod 'x', :git => 'https://github.com/a/x', :commit => 'abc123'", 1)
        assert decl.ref == "abc123"

    def test_invalid(self):
        """Malformed declarations are errors."""
        with pytest.raises(ValueError):
            parse_declaration("mod", 1)


class TestHelpers:
    """Comment stripping and file reading."""

    def test_hash_inside_quotes_is_kept(self):
        """Quoted # is not a comment."""
        assert strip_inline_comment("mod 'a#b', '1.0' # note") == "mod 'a#b', '1.0'"

    def test_parse_file(self, tmp_path):
        """Files are read as UTF-8."""
        path = tmp_path / "Puppetfile"
        path.write_text("mod 'puppetlabs/stdlib', '9.0.0'\n", encoding="utf-8")
        result = parse_file(str(path))
        assert result.modules[0].exact_version == "9.0.0"

    def test_parse_missing_file(self, tmp_path):
        """Missing files raise OSError."""
        with pytest.raises(OSError):
            parse_file(str(tmp_path / "missing"))
