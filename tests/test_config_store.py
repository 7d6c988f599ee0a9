"""
Tests for the skills configuration store

Covers defaulting, merge and clamping rules, persistence, watchers and the
convenience mutators.
"""

import os

import pytest
import yaml

from skills_registry.config import (
    ConfigPersistenceError,
    DEFAULT_CONFIG_TEMPLATE,
    Mode,
    SkillsConfigStore,
    SkillsSettings,
    default_document,
    deep_merge,
)


class TestDefaults:
    """First run and default document"""

    @pytest.mark.asyncio
    async def test_missing_file_writes_defaults(self, store):
        """A missing backing file is created with the commented template"""
        assert not store.config_path.exists()

        await store.init()

        assert store.config_path.exists()
        assert store.config_path.read_text(encoding="utf-8") == DEFAULT_CONFIG_TEMPLATE
        assert store.get_document() == default_document()

    def test_template_parses_to_default_document(self):
        """The commented template carries exactly the default values"""
        assert yaml.safe_load(DEFAULT_CONFIG_TEMPLATE) == default_document()

    @pytest.mark.asyncio
    async def test_defaulting_is_idempotent(self, tmp_path):
        """Loading without a backing document twice yields identical bytes"""
        first = SkillsConfigStore.for_plugin_root(tmp_path)
        await first.load()
        before = first.config_path.read_bytes()

        await first.load()
        assert first.config_path.read_bytes() == before

        first.config_path.unlink()
        second = SkillsConfigStore.for_plugin_root(tmp_path)
        await second.load()
        assert second.config_path.read_bytes() == before

    def test_accessors_before_load(self, store):
        """Accessors answer with defaults before anything is loaded"""
        assert store.is_enabled()
        assert store.get_mode() == Mode.HYBRID
        assert store.is_builtin_enabled()
        assert store.is_custom_enabled()
        assert store.is_mcp_enabled()
        assert store.get_groups() == []
        assert store.get_execution_config().timeout == 30000
        assert store.get_dispatch_config().max_groups == 3
        assert not store.allow_dangerous()
        assert store.get_dangerous_required_permission() == "admin"
        assert store.get_group_by_name("admin") is None
        assert store.get_group_by_index(0) is None

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, store):
        """Second init does not reload"""
        calls = []
        store.add_watcher(calls.append)

        await store.init()
        await store.init()

        assert store.initialized
        assert len(calls) == 1


class TestMerge:
    """Overlaying user documents on the default skeleton"""

    @pytest.mark.asyncio
    async def test_omitted_section_inherits_defaults(self, store, write_config):
        """A document without `execution` gets the default execution block"""
        write_config({"mode": "skills-only"})

        await store.load()

        assert store.get_mode() == Mode.SKILLS_ONLY
        assert store.get_document()["skills"]["execution"] == default_document()["skills"]["execution"]

    @pytest.mark.asyncio
    async def test_partial_nested_section(self, store, write_config):
        """Sibling leaves of a partially given mapping keep their defaults"""
        write_config({"sources": {"mcp": {"disabledServers": ["slow"]}}})

        await store.load()

        assert store.get_disabled_mcp_servers() == ["slow"]
        assert store.get_enabled_mcp_servers() == []
        assert store.get_sources().mcp.enabled
        assert store.get_sources().builtin.enabled

    def test_lists_replace_wholesale(self):
        """Arrays in a patch replace, mappings merge"""
        base = {"a": {"items": [1, 2, 3], "keep": True}}
        merged = deep_merge(base, {"a": {"items": [9]}})

        assert merged == {"a": {"items": [9], "keep": True}}
        assert base == {"a": {"items": [1, 2, 3], "keep": True}}

    @pytest.mark.asyncio
    async def test_unknown_keys_preserved(self, store, write_config):
        """Keys the schema does not know survive load and save"""
        write_config({"experimental": {"flag": 1}})

        await store.load()
        await store.update({"dispatch": {"maxGroups": 5}})

        on_disk = yaml.safe_load(store.config_path.read_text(encoding="utf-8"))
        assert on_disk["skills"]["experimental"] == {"flag": 1}
        assert on_disk["skills"]["dispatch"]["maxGroups"] == 5

    @pytest.mark.asyncio
    async def test_malformed_yaml_falls_back(self, store):
        """Unparseable file → defaults in memory, file left untouched"""
        store.config_path.parent.mkdir(parents=True)
        store.config_path.write_text("skills: [unclosed\n  mode: :\n", encoding="utf-8")
        written = store.config_path.read_text(encoding="utf-8")

        await store.load()

        assert store.get_document() == default_document()
        assert store.config_path.read_text(encoding="utf-8") == written

    @pytest.mark.asyncio
    async def test_non_mapping_document_falls_back(self, store):
        """A top-level list is treated like a malformed file"""
        store.config_path.parent.mkdir(parents=True)
        store.config_path.write_text("- one\n- two\n", encoding="utf-8")

        await store.load()

        assert store.get_config() == SkillsSettings.defaults()

    @pytest.mark.asyncio
    async def test_invalid_utf8_falls_back(self, store):
        """Undecodable bytes → defaults in memory, file left untouched"""
        store.config_path.parent.mkdir(parents=True)
        store.config_path.write_bytes(b"skills:\n  mode: \xff\xfe hybrid\n")

        await store.load()

        assert store.get_document() == default_document()
        assert store.config_path.read_bytes() == b"skills:\n  mode: \xff\xfe hybrid\n"

    @pytest.mark.asyncio
    async def test_empty_file_gives_defaults(self, store):
        store.config_path.parent.mkdir(parents=True)
        store.config_path.write_text("", encoding="utf-8")

        await store.load()

        assert store.get_document() == default_document()


class TestValidation:
    """Clamping and coercion on load and update"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [0, 999, -5])
    async def test_timeout_clamped_on_load(self, store, write_config, timeout):
        write_config({"execution": {"timeout": timeout}})

        await store.load()

        assert store.get_execution_config().timeout == 1000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("given,expected", [(0, 1), (-3, 1), (21, 20), (500, 20), (7, 7)])
    async def test_max_parallel_clamped(self, store, write_config, given, expected):
        write_config({"execution": {"maxParallel": given}})

        await store.load()

        assert store.get_execution_config().max_parallel == expected

    @pytest.mark.asyncio
    async def test_clamped_on_update(self, store):
        await store.init()

        await store.update({"execution": {"timeout": 10, "maxParallel": 99}})

        execution = store.get_execution_config()
        assert execution.timeout == 1000
        assert execution.max_parallel == 20
        on_disk = yaml.safe_load(store.config_path.read_text(encoding="utf-8"))
        assert on_disk["skills"]["execution"]["timeout"] == 1000

    @pytest.mark.asyncio
    async def test_numeric_strings_coerced(self, store, write_config):
        write_config({"execution": {"timeout": "5000", "maxParallel": "3"}})

        await store.load()

        assert store.get_execution_config().timeout == 5000
        assert store.get_execution_config().max_parallel == 3

    @pytest.mark.asyncio
    async def test_invalid_mode_becomes_hybrid(self, store, write_config):
        write_config({"mode": "everything"})

        await store.load()

        assert store.get_mode() == Mode.HYBRID

    @pytest.mark.asyncio
    async def test_group_without_name_kept(self, store, write_config):
        """Nameless groups log a warning but stay configured"""
        write_config({"groups": [{"index": 4, "tools": ["a"]}]})

        await store.load()

        group = store.get_group_by_index(4)
        assert group is not None
        assert group.name is None
        assert group.tools == ("a",)

    @pytest.mark.asyncio
    async def test_group_tools_coerced_to_list(self, store, write_config):
        write_config({"groups": [{"index": 0, "name": "broken", "tools": "kick_member"}]})

        await store.load()

        assert store.get_group_by_name("broken").tools == ()
        assert store.get_document()["skills"]["groups"][0]["tools"] == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["timeout", "maxParallel", "maxRetries", "cacheTTL"])
    @pytest.mark.parametrize("value", [".inf", "-.inf", ".nan"])
    async def test_non_finite_numbers_use_defaults(self, store, key, value):
        """.inf and .nan are not integers; the default applies"""
        store.config_path.parent.mkdir(parents=True)
        store.config_path.write_text(f"skills:\n  execution:\n    {key}: {value}\n", encoding="utf-8")

        await store.load()

        assert store.get_execution_config() == SkillsSettings.defaults().execution

    @pytest.mark.asyncio
    async def test_non_finite_group_index(self, store):
        store.config_path.parent.mkdir(parents=True)
        store.config_path.write_text(
            "skills:\n  groups:\n    - {index: .inf, name: admin, tools: [kick_member]}\n",
            encoding="utf-8",
        )

        await store.load()

        assert store.get_group_by_name("admin").index is None

    @pytest.mark.asyncio
    async def test_unknown_permission_kept_as_written(self, store, write_config):
        write_config({"security": {"dangerousRequiredPermission": "superuser"}})

        await store.load()

        assert store.get_dangerous_required_permission() == "superuser"


class TestUpdate:
    """Mutations, persistence and watchers"""

    @pytest.mark.asyncio
    async def test_update_persists(self, store):
        await store.init()

        await store.update({"mode": Mode.MCP_ONLY, "security": {"allowDangerous": True}})

        assert store.get_mode() == Mode.MCP_ONLY
        assert store.allow_dangerous()

        reread = SkillsConfigStore(store.config_path)
        await reread.load()
        assert reread.get_mode() == Mode.MCP_ONLY
        assert reread.allow_dangerous()
        assert reread.get_dangerous_required_permission() == "admin"

    @pytest.mark.asyncio
    async def test_saved_file_has_header(self, store):
        await store.init()
        await store.update({"enabled": False})

        text = store.config_path.read_text(encoding="utf-8")
        assert text.startswith("# Skills module configuration")
        assert not store.is_enabled()

    @pytest.mark.asyncio
    async def test_non_mapping_patch_is_ignored(self, store):
        await store.init()
        calls = []
        store.add_watcher(calls.append)

        await store.update(None)
        await store.update(["mode"])

        assert calls == []
        assert store.get_document() == default_document()

    @pytest.mark.asyncio
    async def test_snapshot_unchanged_by_update(self, store):
        """A settings snapshot taken before an update stays as it was"""
        await store.init()
        before = store.get_config()

        await store.update({"dispatch": {"enabled": False}})

        assert before.dispatch.enabled
        assert not store.get_dispatch_config().enabled

    @pytest.mark.asyncio
    async def test_returned_lists_are_copies(self, store):
        await store.init()
        await store.disable_tool("web_search")

        store.get_disabled_tools().append("mutated")
        store.get_document()["skills"]["mode"] = "mcp-only"

        assert store.get_disabled_tools() == ["web_search"]
        assert store.get_mode() == Mode.HYBRID

    @pytest.mark.asyncio
    async def test_watchers_notified(self, store):
        seen = []
        store.add_watcher(lambda settings: seen.append(settings.mode))

        await store.load()
        await store.update({"mode": "skills-only"})
        await store.reload()

        assert seen == [Mode.HYBRID, Mode.SKILLS_ONLY, Mode.SKILLS_ONLY]

    @pytest.mark.asyncio
    async def test_failing_watcher_isolated(self, store):
        """One watcher raising does not stop the others or the caller"""
        seen = []

        def broken(settings):
            raise ValueError("watcher bug")

        store.add_watcher(broken)
        store.add_watcher(seen.append)

        await store.load()
        await store.update({"dispatch": {"maxGroups": 1}})

        assert len(seen) == 2
        assert seen[-1].dispatch.max_groups == 1

    @pytest.mark.asyncio
    async def test_watchers_see_unknown_keys(self, store, write_config):
        """Keys outside the schema reach watchers through the snapshot"""
        write_config({"experimental": {"flag": 1}})
        seen = []
        store.add_watcher(seen.append)

        await store.load()

        assert dict(seen[0].extras) == {"experimental": {"flag": 1}}
        assert SkillsSettings.defaults().extras == {}

    @pytest.mark.asyncio
    async def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.add_watcher(seen.append)

        await store.load()
        unsubscribe()
        unsubscribe()
        await store.reload()

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_persistence_failure(self, store, monkeypatch):
        """Save failure: raised, applied in memory, watchers not notified"""
        await store.init()
        seen = []
        store.add_watcher(seen.append)

        def failing_write(path, document):
            raise ConfigPersistenceError(f"Failed to write {path}: read-only")

        monkeypatch.setattr("skills_registry.config.store.write_document", failing_write)

        with pytest.raises(ConfigPersistenceError):
            await store.update({"security": {"allowDangerous": True}})

        assert store.allow_dangerous()
        assert seen == []

        on_disk = yaml.safe_load(store.config_path.read_text(encoding="utf-8"))
        assert on_disk["skills"]["security"]["allowDangerous"] is False


class TestMutators:
    """toggle_group / disable_tool / enable_tool"""

    @pytest.mark.asyncio
    async def test_toggle_group(self, store, write_config):
        write_config({"groups": [{"index": 0, "name": "admin", "tools": ["kick_member"]}]})
        await store.init()

        assert await store.toggle_group("admin", False)

        assert store.get_enabled_groups() == []
        assert not store.get_group_by_name("admin").enabled
        on_disk = yaml.safe_load(store.config_path.read_text(encoding="utf-8"))
        assert on_disk["skills"]["groups"][0]["enabled"] is False

    @pytest.mark.asyncio
    async def test_toggle_unknown_group(self, store):
        await store.init()
        seen = []
        store.add_watcher(seen.append)

        assert not await store.toggle_group("nope", True)
        assert seen == []

    @pytest.mark.asyncio
    async def test_disable_tool_is_idempotent(self, store):
        await store.init()

        assert await store.disable_tool("kick_member")
        assert not await store.disable_tool("kick_member")

        assert store.get_disabled_tools() == ["kick_member"]

    @pytest.mark.asyncio
    async def test_enable_tool(self, store):
        await store.init()
        await store.disable_tool("a")
        await store.disable_tool("b")

        assert await store.enable_tool("a")
        assert not await store.enable_tool("a")
        assert not await store.enable_tool("never_disabled")

        assert store.get_disabled_tools() == ["b"]


class TestMisc:

    @pytest.mark.asyncio
    async def test_has_changed(self, store):
        await store.init()
        assert not store.has_changed()

        stat = store.config_path.stat()
        os.utime(store.config_path, (stat.st_atime, stat.st_mtime + 10))

        assert store.has_changed()
        await store.reload()
        assert not store.has_changed()

    @pytest.mark.asyncio
    async def test_custom_tools_path(self, store, tmp_path, write_config):
        write_config({"sources": {"custom": {"path": "scripts/tools"}}})

        await store.load()

        assert store.get_custom_tools_path() == tmp_path / "scripts" / "tools"

    @pytest.mark.asyncio
    async def test_mode_gates_source_accessors(self, store):
        await store.init()

        await store.update({"mode": "mcp-only"})
        assert not store.is_builtin_enabled()
        assert not store.is_custom_enabled()
        assert store.is_mcp_enabled()

        await store.update({"mode": "skills-only"})
        assert store.is_builtin_enabled()
        assert store.is_custom_enabled()
        assert not store.is_mcp_enabled()
