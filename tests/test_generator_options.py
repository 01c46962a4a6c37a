"""
Tests for generator options.

These tests verify that the options given to the protoc plugin (through the
--zod_out parameter string) and to the command line are parsed and applied:
- include_responses switches on generation of *Response messages
- unknown plugin parameters are ignored
- the command line flags map onto GeneratorOptions
"""

import pytest
from google.protobuf import descriptor_pb2

from conftest import ProtoBuilder
from protoc_gen_zod.zod_generator import main_cli, parse_plugin_parameter


class TestPluginParameter:
    """
    Tests for parsing the plugin parameter string.
    """

    @pytest.mark.plugin
    def test_empty_parameter(self):
        options = parse_plugin_parameter("")
        assert not options.include_responses
        assert not options.verbose

    @pytest.mark.plugin
    @pytest.mark.parametrize("parameter", [
        "include_responses=true",
        " include_responses = true ",
        "target=ts,include_responses=true",
    ])
    def test_include_responses_enabled(self, parameter):
        assert parse_plugin_parameter(parameter).include_responses

    @pytest.mark.plugin
    @pytest.mark.parametrize("parameter", [
        "include_responses=false",
        "include_responses",
        "include_responses=True",
        "include_responses=1",
        "include_responses=yes",
        "target=ts",
        "import_extension=.js,,",
    ])
    def test_include_responses_disabled(self, parameter):
        assert not parse_plugin_parameter(parameter).include_responses


class TestCommandLineOptions:
    """
    Tests for the zod-generator command line flags.

    The inputs are FileDescriptorSets, so no protoc is needed.
    """

    @pytest.fixture
    def descriptor_set(self, temp_dir):
        builder = ProtoBuilder("mirai/v1/auth.proto", "mirai.v1")
        builder.message("LoginRequest")
        builder.message("LoginResponse")

        file_set = descriptor_pb2.FileDescriptorSet()
        file_set.file.add().CopyFrom(builder.fdesc)
        path = temp_dir / "auth.pb"
        path.write_bytes(file_set.SerializeToString())
        return path

    @pytest.mark.plugin
    def test_output_dir(self, descriptor_set, temp_dir, capsys):
        out = temp_dir / "gen"

        assert main_cli([str(descriptor_set), "-D", str(out)]) == 0

        generated = out / "mirai" / "v1" / "auth_zod.ts"
        assert generated.exists()
        assert "Writing to " + str(generated) in capsys.readouterr().out

    @pytest.mark.plugin
    def test_quiet(self, descriptor_set, temp_dir, capsys):
        assert main_cli([str(descriptor_set), "-D", str(temp_dir), "-q"]) == 0
        assert capsys.readouterr().out == ""

    @pytest.mark.plugin
    def test_responses_are_excluded_by_default(self, descriptor_set, temp_dir):
        main_cli([str(descriptor_set), "-D", str(temp_dir), "-q"])
        content = (temp_dir / "mirai" / "v1" / "auth_zod.ts").read_text(encoding="utf-8")
        assert "LoginRequestSchema" in content
        assert "LoginResponseSchema" not in content

    @pytest.mark.plugin
    def test_include_responses_flag(self, descriptor_set, temp_dir):
        main_cli([str(descriptor_set), "-D", str(temp_dir), "-q", "--include-responses"])
        content = (temp_dir / "mirai" / "v1" / "auth_zod.ts").read_text(encoding="utf-8")
        assert "export const LoginResponseSchema = z.object({" in content

    @pytest.mark.plugin
    @pytest.mark.validation
    def test_rules_survive_descriptor_set(self, temp_dir, validate_pb2):
        builder = ProtoBuilder()
        form = builder.message("SignupForm")
        name = builder.field(form, "name", "string")
        rules = name.options.Extensions[validate_pb2.field]
        rules.required = True
        rules.string.min_len = 3
        file_set = descriptor_pb2.FileDescriptorSet()
        file_set.file.add().CopyFrom(builder.fdesc)
        path = temp_dir / "signup.pb"
        path.write_bytes(file_set.SerializeToString())

        assert main_cli([str(path), "-D", str(temp_dir), "-q"]) == 0

        content = (temp_dir / "test" / "v1" / "sample_zod.ts").read_text(encoding="utf-8")
        assert "  name: z.string().min(3)," in content.splitlines()

    @pytest.mark.plugin
    def test_unresolvable_type_fails(self, temp_dir, capsys):
        builder = ProtoBuilder()
        broken = builder.message("Broken")
        builder.field(broken, "ref", "message", ".missing.Type")
        file_set = descriptor_pb2.FileDescriptorSet()
        file_set.file.add().CopyFrom(builder.fdesc)
        path = temp_dir / "broken.pb"
        path.write_bytes(file_set.SerializeToString())

        assert main_cli([str(path), "-D", str(temp_dir)]) == 1

        err = capsys.readouterr().err
        assert "Error: Could not resolve type .missing.Type of field test.v1.Broken.ref" in err
        assert not (temp_dir / "test").exists()
