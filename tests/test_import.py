"""
Unit tests for chhaya package import.

These tests verify that:
1. The package can be imported without errors
2. The package exposes version metadata and its public entry points

"""

# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_import_and_version():
    """Ensure the package loads and __version__ attribute exists."""
    import chhaya
    assert hasattr(chhaya, "__version__")
    assert isinstance(chhaya.__version__, str)


def test_public_entry_points():
    """Projection, profile and persistence functions are exported at top level."""
    import chhaya
    for name in ("projection", "project", "profile", "resolve", "save_projection", "load_cell_table"):
        assert callable(getattr(chhaya, name))


def test_packaged_config_loads():
    """The packaged TOML defaults are readable."""
    from chhaya.config_module import get_config
    cfg = get_config()
    assert cfg["DENSE_MAX_RESOLUTION"] > 0
    assert cfg["UNIT_DIMENSIONS"]["Msol"] == "mass"
