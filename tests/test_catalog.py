"""Tests for catalog module."""

from __future__ import annotations

from pathlib import Path

import pytest

from offline_kit.catalog import ArtifactFile, Catalog, CatalogError, load_catalog


class TestBuiltinCatalog:
    """Tests for the catalog shipped with the package."""

    def test_builtin_kinds(self, builtin_catalog: Catalog) -> None:
        """Test the built-in kinds are present."""
        assert builtin_catalog.names() == [
            "package-manager",
            "runtime",
            "tool",
            "tool-set",
            "vscode-server",
        ]

    def test_names_filled_from_keys(self, builtin_catalog: Catalog) -> None:
        """Test each kind knows its own name."""
        for name, kind in builtin_catalog.kinds.items():
            assert kind.name == name

    def test_vscode_server_linux_only(self, builtin_catalog: Catalog) -> None:
        """Test platform restrictions are honored."""
        kind = builtin_catalog.get("vscode-server")

        assert kind is not None
        assert kind.supports("linux_x64")
        assert not kind.supports("win32_x64")

    def test_unrestricted_kind_supports_all(self, builtin_catalog: Catalog) -> None:
        """Test kinds without a platform list are offered everywhere."""
        kind = builtin_catalog.get("tool")

        assert kind is not None
        assert kind.supports("mac_arm64")

    def test_tool_set_uses_bundled_pnpm(self, builtin_catalog: Catalog) -> None:
        """Test the tool set installs through pnpm and the shared store."""
        kind = builtin_catalog.get("tool-set")

        assert kind is not None
        assert kind.package_manager == "{platform}/pnpm/pnpm{exe}"
        assert kind.package_store == "common/pnpm-store"
        assert kind.bin_dirs == ["node_modules/.bin"]

    def test_get_unknown(self, builtin_catalog: Catalog) -> None:
        """Test get returns None for unknown kinds."""
        assert builtin_catalog.get("compiler") is None


class TestCatalogValidation:
    """Tests for catalog parsing and validation."""

    def test_from_mapping(self) -> None:
        """Test a minimal catalog mapping."""
        catalog = Catalog.from_mapping(
            {
                "kinds": {
                    "fonts": {
                        "base": "common/fonts",
                        "files": [{"pattern": "*.ttf", "multiple": True}],
                    }
                }
            }
        )

        kind = catalog.get("fonts")
        assert kind is not None
        assert kind.files[0].multiple is True
        assert kind.platforms is None

    def test_platform_aliases_normalized(self) -> None:
        """Test platform restrictions accept aliases."""
        catalog = Catalog.from_mapping(
            {"kinds": {"x": {"files": [{"pattern": "x"}], "platforms": ["darwin_arm64"]}}}
        )

        assert catalog.kinds["x"].platforms == ["mac_arm64"]

    def test_unknown_platform_rejected(self) -> None:
        """Test unknown platform ids make the catalog invalid."""
        with pytest.raises(CatalogError):
            Catalog.from_mapping(
                {"kinds": {"x": {"files": [{"pattern": "x"}], "platforms": ["beos_x64"]}}}
            )

    def test_requires_files(self) -> None:
        """Test a kind without files is rejected."""
        with pytest.raises(CatalogError):
            Catalog.from_mapping({"kinds": {"x": {"files": []}}})

    def test_bad_version_pattern(self) -> None:
        """Test an invalid regex is rejected."""
        with pytest.raises(CatalogError, match="version_pattern"):
            Catalog.from_mapping(
                {"kinds": {"x": {"files": [{"pattern": "x"}], "version_pattern": "("}}}
            )

    def test_unknown_field_rejected(self) -> None:
        """Test typos in kind definitions are caught."""
        with pytest.raises(CatalogError):
            Catalog.from_mapping({"kinds": {"x": {"files": [{"pattern": "x"}], "bindirs": []}}})

    def test_parent_segment_in_target_rejected(self) -> None:
        """Test file targets may not climb out of the destination."""
        with pytest.raises(ValueError):
            ArtifactFile(pattern="x", target="../bin")

    def test_package_manager_requires_store(self) -> None:
        """Test a package manager without a store is rejected."""
        with pytest.raises(CatalogError, match="package_store"):
            Catalog.from_mapping(
                {"kinds": {"x": {"files": [{"pattern": "x"}], "package_manager": "pnpm"}}}
            )

    def test_parent_segment_in_store_rejected(self) -> None:
        """Test the package store must stay inside the payload root."""
        with pytest.raises(CatalogError):
            Catalog.from_mapping(
                {
                    "kinds": {
                        "x": {
                            "files": [{"pattern": "x"}],
                            "package_manager": "pnpm",
                            "package_store": "../store",
                        }
                    }
                }
            )

    def test_kinds_must_be_mapping(self) -> None:
        """Test a list of kinds is rejected."""
        with pytest.raises(CatalogError, match="mapping"):
            Catalog.from_mapping({"kinds": ["runtime"]})


class TestLoadCatalog:
    """Tests for load_catalog."""

    def test_default_is_builtin(self, builtin_catalog: Catalog) -> None:
        """Test load_catalog without an override returns the built-ins."""
        assert load_catalog().names() == builtin_catalog.names()

    def test_override_adds_and_replaces(self, tmp_path: Path) -> None:
        """Test an override file adds new kinds and replaces same-named ones."""
        override = tmp_path / "catalog.yaml"
        override.write_text(
            """
kinds:
  tool:
    description: Replaced tool kind
    base: "{platform}/bin"
    files:
      - pattern: "*"
        multiple: true
  docs:
    base: common/docs
    files:
      - pattern: manual.pdf
"""
        )

        catalog = load_catalog(override)

        assert catalog.kinds["tool"].description == "Replaced tool kind"
        assert "docs" in catalog.names()
        assert "runtime" in catalog.names()

    def test_missing_override(self, tmp_path: Path) -> None:
        """Test a missing override file raises CatalogError."""
        with pytest.raises(CatalogError, match="not found"):
            load_catalog(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test broken YAML raises CatalogError."""
        override = tmp_path / "catalog.yaml"
        override.write_text("kinds: [unclosed\n")

        with pytest.raises(CatalogError, match="Invalid YAML"):
            load_catalog(override)
