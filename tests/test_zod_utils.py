"""
Tests for the naming and path helpers.

These are pure string functions; the relative import path computation is the
one that decides whether generated modules can find each other.
"""

import pytest

from protoc_gen_zod.zod_utils import (
    escape_pattern,
    escape_string,
    get_proto_base_name,
    get_relative_import_path,
    is_response_message,
    strip_enum_prefix,
    strip_proto_extension,
    to_camel_case,
    to_schema_name,
    to_screaming_snake_case,
)


class TestNaming:
    """Identifier conversions."""

    @pytest.mark.parametrize("name, expected", [
        ("user_id", "userId"),
        ("display_name_v2", "displayNameV2"),
        ("email", "email"),
        ("page_2_token", "page_2Token"),
        ("alreadyCamel", "alreadyCamel"),
    ])
    def test_camel_case(self, name, expected):
        assert to_camel_case(name) == expected

    def test_schema_name(self):
        assert to_schema_name("RegisterRequest") == "RegisterRequestSchema"

    @pytest.mark.parametrize("name, expected", [
        ("CostType", "COST_TYPE"),
        ("HTTPMethod", "HTTP_METHOD"),
        ("Status", "STATUS"),
        ("userRole", "USER_ROLE"),
    ])
    def test_screaming_snake_case(self, name, expected):
        assert to_screaming_snake_case(name) == expected

    def test_strip_enum_prefix(self):
        assert strip_enum_prefix("COST_TYPE_TOKEN_INPUT", "CostType") == "TOKEN_INPUT"
        assert strip_enum_prefix("COST_TYPE_UNSPECIFIED", "CostType") == "UNSPECIFIED"

    def test_strip_enum_prefix_leaves_foreign_names(self):
        assert strip_enum_prefix("ACTIVE", "Status") == "ACTIVE"
        assert strip_enum_prefix("STATUSACTIVE", "Status") == "STATUSACTIVE"

    def test_response_suffix(self):
        assert is_response_message("LoginResponse")
        assert not is_response_message("LoginRequest")
        assert not is_response_message("ResponseCode")


class TestEscaping:
    """Literal escaping for generated TypeScript."""

    def test_escape_string(self):
        assert escape_string('say "hi"') == 'say \\"hi\\"'
        assert escape_string('a\\b') == 'a\\\\b'
        assert escape_string('line\nbreak') == 'line\\nbreak'

    def test_escape_pattern_keeps_regex_escapes_intact(self):
        # \d must reach RegExp() as \d, so the backslash is doubled in the literal
        assert escape_pattern('^\\d+$') == '^\\\\d+$'
        assert escape_pattern('"x"') == '\\"x\\"'

    def test_escape_pattern_line_breaks(self):
        # A raw line break would end the TypeScript string literal
        assert escape_pattern('a\nb\rc') == 'a\\nb\\rc'
        assert '\n' not in escape_pattern('^line\n$')


class TestImportPaths:
    """Relative ES module specifiers between generated files."""

    def test_strip_proto_extension(self):
        assert strip_proto_extension("mirai/v1/auth.proto") == "mirai/v1/auth"
        assert strip_proto_extension("mirai/v1/auth") == "mirai/v1/auth"

    def test_base_name(self):
        assert get_proto_base_name("mirai/v1/auth") == "auth"
        assert get_proto_base_name("auth") == "auth"

    def test_same_directory(self):
        assert get_relative_import_path("mirai/v1/auth", "mirai/v1/common", ".js") == "./common.js"

    def test_same_file(self):
        assert get_relative_import_path("mirai/v1/auth", "mirai/v1/auth", ".js") == "./auth.js"

    def test_top_level_files(self):
        assert get_relative_import_path("auth", "common", "_zod.js") == "./common_zod.js"

    def test_sibling_directory(self):
        path = get_relative_import_path("mirai/v1/auth", "mirai/v2/common", "_zod.js")
        assert path == "../v2/common_zod.js"

    def test_unrelated_directory(self):
        path = get_relative_import_path("mirai/v1/auth", "shared/types", "_zod.js")
        assert path == "../../shared/types_zod.js"

    def test_target_below_current_directory(self):
        path = get_relative_import_path("mirai/auth", "mirai/v1/common", ".js")
        assert path == "./v1/common.js"

    def test_target_above_current_directory(self):
        path = get_relative_import_path("mirai/v1/auth", "mirai/common", ".js")
        assert path == "../common.js"

    def test_from_root_into_directory(self):
        path = get_relative_import_path("auth", "shared/types", ".js")
        assert path == "./shared/types.js"
