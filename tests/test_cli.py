"""
Tests for the command-line interface.
"""
import json

import pytest
from click.testing import CliRunner
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from pwnedkeys_filter.cli import EXIT_ERROR, main
from pwnedkeys_filter.filter import Filter


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def filter_path(tmp_path):
    path = tmp_path / "test.pkbf"
    Filter.create(path, hash_count=3, hash_length=12)
    return path


def _write_key(path):
    key = ed25519.Ed25519PrivateKey.generate()
    path.write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    return path


class TestCreateCommand:
    """Test cases for the create command."""

    def test_create_derived(self, runner, tmp_path):
        """Test creating a filter from capacity and rate."""
        path = tmp_path / "new.pkbf"
        result = runner.invoke(main, ["create", str(path), "--entries", "1000", "--fp-rate", "0.01"])

        assert result.exit_code == 0, result.output
        with Filter.open(path) as bloom:
            assert (bloom.hash_count, bloom.hash_length) == (3, 14)

    def test_create_explicit(self, runner, tmp_path):
        """Test creating a filter with explicit geometry."""
        path = tmp_path / "new.pkbf"
        result = runner.invoke(main, ["create", str(path), "-k", "2", "-b", "4"])

        assert result.exit_code == 0, result.output
        assert path.stat().st_size == 26

    def test_create_from_config(self, runner, tmp_path):
        """Test creating a filter described by a configuration file."""
        path = tmp_path / "new.pkbf"
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"path": str(path), "hash_count": 5, "hash_length": 7}))

        result = runner.invoke(main, ["create", "--config", str(config)])

        assert result.exit_code == 0, result.output
        assert path.stat().st_size == 40

    def test_create_existing(self, runner, filter_path):
        """Test that an existing file is reported as an error."""
        result = runner.invoke(main, ["create", str(filter_path), "-k", "2", "-b", "4"])

        assert result.exit_code == EXIT_ERROR
        assert "Error" in result.output

    def test_create_without_geometry(self, runner, tmp_path):
        """Test that geometry is required."""
        result = runner.invoke(main, ["create", str(tmp_path / "new.pkbf")])

        assert result.exit_code == EXIT_ERROR


def test_params(runner):
    """Test the params command."""
    result = runner.invoke(main, ["params", "--entries", "1000", "--fp-rate", "0.01"])

    assert result.exit_code == 0, result.output
    assert "hash_count" in result.output
    assert "14" in result.output


def test_params_invalid(runner):
    """Test the params command with an impossible rate."""
    result = runner.invoke(main, ["params", "--entries", "1000", "--fp-rate", "2"])

    assert result.exit_code == EXIT_ERROR


class TestAddAndQuery:
    """Test cases for the add and query commands."""

    def test_add_then_query(self, runner, filter_path, tmp_path):
        """Test adding a key and finding it again."""
        keyfile = _write_key(tmp_path / "pwned.pem")

        result = runner.invoke(main, ["add", str(filter_path), str(keyfile)])
        assert result.exit_code == 0, result.output
        assert "1 of 1 keys added" in result.output

        result = runner.invoke(main, ["query", str(filter_path), str(keyfile)])
        assert result.exit_code == 0, result.output
        assert "PWNED" in result.output

    def test_add_twice(self, runner, filter_path, tmp_path):
        """Test that re-adding a key is reported."""
        keyfile = _write_key(tmp_path / "pwned.pem")

        runner.invoke(main, ["add", str(filter_path), str(keyfile)])
        result = runner.invoke(main, ["add", str(filter_path), str(keyfile)])

        assert result.exit_code == 0, result.output
        assert "already present" in result.output

    def test_query_missing(self, runner, filter_path, tmp_path):
        """Test that an absent key gives exit status 1."""
        keyfile = _write_key(tmp_path / "fine.pem")

        result = runner.invoke(main, ["query", str(filter_path), str(keyfile)])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_key_file(self, runner, filter_path, tmp_path):
        """Test that an unparseable key file is an error."""
        keyfile = tmp_path / "junk.pem"
        keyfile.write_bytes(b"yo mama")

        result = runner.invoke(main, ["add", str(filter_path), str(keyfile)])

        assert result.exit_code == EXIT_ERROR
        with Filter.open(filter_path) as bloom:
            assert bloom.entry_count == 0

    def test_invalid_filter_file(self, runner, tmp_path):
        """Test that a corrupt filter file is an error."""
        path = tmp_path / "bad.pkbf"
        path.write_bytes(b"lolcats!")
        keyfile = _write_key(tmp_path / "key.pem")

        result = runner.invoke(main, ["query", str(path), str(keyfile)])

        assert result.exit_code == EXIT_ERROR


def test_info(runner, filter_path, tmp_path):
    """Test the info command and its JSON output."""
    keyfile = _write_key(tmp_path / "pwned.pem")
    runner.invoke(main, ["add", str(filter_path), str(keyfile)])
    output = tmp_path / "stats.json"

    result = runner.invoke(main, ["info", str(filter_path), "--output", str(output)])

    assert result.exit_code == 0, result.output
    assert "pkbfv1" in result.output
    stats = json.loads(output.read_text())
    assert stats["entry_count"] == 1
    assert stats["revision"] == 1


def test_version(runner):
    """Test the version command."""
    result = runner.invoke(main, ["version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_log_level(runner):
    """Test that the log level option is accepted."""
    result = runner.invoke(main, ["--log-level", "debug", "version"])

    assert result.exit_code == 0
