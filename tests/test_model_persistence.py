"""
test_model_persistence.py
~~~~~~~~~~~~~~~~~~~~~~~~~~

Unit tests for the SQLite network registry.
"""

import os
import sqlite3
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from feedforward import Activation, Network
from feedforward.model_persistence import (
    ModelDatabase,
    delete_network,
    delete_old_networks,
    fetch_network,
    get_network_metadata,
    list_saved_networks,
    store_network,
)


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def simple_network():
    """Create a simple 3-layer network for testing."""
    return Network(3, [4], ['sigmoid'], 2, 'softmax', rng=np.random.default_rng(0))


def age_network(db_dir: str, network_id: str, modifier: str) -> None:
    """Move a network's creation time into the past, e.g. '-3 days'."""
    conn = sqlite3.connect(os.path.join(db_dir, "networks.db"))
    cursor = conn.cursor()
    cursor.execute('''
        UPDATE networks
        SET created_at = datetime('now', ?)
        WHERE network_id = ?
    ''', (modifier, network_id))
    conn.commit()
    conn.close()


@pytest.mark.unit
class TestModelPersistence:
    """Test basic registry operations."""

    def test_store_network_creates_database(self, simple_network, temp_db_dir):
        """Test that storing a network creates the database file."""
        assert store_network(simple_network, "test_network_1", model_dir=temp_db_dir) is True
        assert os.path.exists(f"{temp_db_dir}/networks.db")

    def test_store_network_with_metadata(self, simple_network, temp_db_dir):
        """Test that network metadata is saved correctly."""
        network_id = "scored_network"

        assert store_network(
            simple_network,
            network_id,
            model_dir=temp_db_dir,
            accuracy=0.85
        )

        metadata = get_network_metadata(network_id, temp_db_dir)
        assert metadata is not None
        assert metadata['network_id'] == network_id
        assert metadata['accuracy'] == 0.85
        assert metadata['architecture'] == [3, 4, 2]
        assert metadata['activations'] == ['sigmoid', 'softmax']
        assert metadata['weights_shape'] == [[3, 4], [4, 2]]
        assert metadata['biases_shape'] == [[1, 4], [1, 2]]

    def test_fetch_network_returns_network(self, simple_network, temp_db_dir):
        store_network(simple_network, "test_network_2", model_dir=temp_db_dir)
        loaded = fetch_network("test_network_2", temp_db_dir)

        assert isinstance(loaded, Network)
        assert loaded.sizes == simple_network.sizes
        assert loaded.output_activation is Activation.SOFTMAX

    def test_fetch_nonexistent_network(self, temp_db_dir):
        assert fetch_network("nonexistent", temp_db_dir) is None

    def test_fetch_preserves_parameters(self, simple_network, temp_db_dir):
        """Test that stored weights and biases come back bit for bit."""
        store_network(simple_network, "test_network_3", model_dir=temp_db_dir)
        loaded = fetch_network("test_network_3", temp_db_dir)

        for original, restored in zip(simple_network.connections, loaded.connections):
            assert np.array_equal(original.weights, restored.weights)
            assert np.array_equal(original.bias, restored.bias)

    def test_list_saved_networks_empty(self, temp_db_dir):
        assert list_saved_networks(temp_db_dir) == []

    def test_list_saved_networks(self, simple_network, temp_db_dir):
        store_network(simple_network, "net1", model_dir=temp_db_dir, accuracy=0.9)
        store_network(simple_network, "net2", model_dir=temp_db_dir)

        networks = list_saved_networks(temp_db_dir)

        assert len(networks) == 2
        assert {net['network_id'] for net in networks} == {"net1", "net2"}
        for net in networks:
            assert 'created_at' in net
            assert 'updated_at' in net

    def test_delete_network_success(self, simple_network, temp_db_dir):
        store_network(simple_network, "delete_test", model_dir=temp_db_dir)
        assert fetch_network("delete_test", temp_db_dir) is not None

        assert delete_network("delete_test", temp_db_dir) is True
        assert fetch_network("delete_test", temp_db_dir) is None

    def test_delete_nonexistent_network(self, temp_db_dir):
        assert delete_network("nonexistent", temp_db_dir) is False

    def test_update_network(self, simple_network, temp_db_dir):
        """Test that storing with the same ID replaces the row."""
        network_id = "update_test"
        store_network(simple_network, network_id, model_dir=temp_db_dir)
        assert get_network_metadata(network_id, temp_db_dir)['accuracy'] is None

        other = Network(3, [5], ['relu'], 2, 'softmax')
        store_network(other, network_id, model_dir=temp_db_dir, accuracy=0.88)

        metadata = get_network_metadata(network_id, temp_db_dir)
        assert metadata['accuracy'] == 0.88
        assert metadata['architecture'] == [3, 5, 2]
        assert fetch_network(network_id, temp_db_dir).sizes == [3, 5, 2]
        assert len(list_saved_networks(temp_db_dir)) == 1

    @pytest.mark.parametrize('accuracy', [-0.1, 1.5])
    def test_invalid_accuracy(self, simple_network, temp_db_dir, accuracy):
        """Test that out-of-range accuracy is refused."""
        assert store_network(
            simple_network, "bad", model_dir=temp_db_dir, accuracy=accuracy
        ) is False
        assert get_network_metadata("bad", temp_db_dir) is None

        db = ModelDatabase(db_path=os.path.join(temp_db_dir, "networks.db"))
        with pytest.raises(ValueError):
            db.save_network_to_db(simple_network, "bad", accuracy=accuracy)

    @pytest.mark.parametrize('network_id', ["", None, 42])
    def test_invalid_network_id(self, simple_network, temp_db_dir, network_id):
        assert store_network(simple_network, network_id, model_dir=temp_db_dir) is False
        assert fetch_network(network_id, temp_db_dir) is None
        assert delete_network(network_id, temp_db_dir) is False

    def test_corrupt_stored_text(self, simple_network, temp_db_dir):
        """Test that a damaged row is reported as missing, not half-loaded."""
        store_network(simple_network, "corrupt", model_dir=temp_db_dir)

        conn = sqlite3.connect(os.path.join(temp_db_dir, "networks.db"))
        conn.execute(
            "UPDATE networks SET network_data = ? WHERE network_id = ?",
            ("3\n3\n4\n2\nsigmoid\nsoftmax\n0x1p+0\n", "corrupt")
        )
        conn.commit()
        conn.close()

        assert fetch_network("corrupt", temp_db_dir) is None

    def test_stored_text_with_huge_sizes(self, simple_network, temp_db_dir):
        """Test that a row declaring impossible layer sizes is reported as missing."""
        store_network(simple_network, "huge", model_dir=temp_db_dir)

        conn = sqlite3.connect(os.path.join(temp_db_dir, "networks.db"))
        conn.execute(
            "UPDATE networks SET network_data = ? WHERE network_id = ?",
            ("2\n1000000000\n1000000000\nsoftmax\n0x1p+0\n", "huge")
        )
        conn.commit()
        conn.close()

        assert fetch_network("huge", temp_db_dir) is None


@pytest.mark.integration
class TestPersistenceIntegration:
    """Integration tests for the registry."""

    def test_multiple_networks_coexist(self, temp_db_dir):
        networks_to_create = [
            ((784, [30], ['sigmoid'], 10, 'softmax'), "mnist_network"),
            ((3, [], [], 2, 'sigmoid'), "simple_network"),
            ((10, [20, 20], ['relu', 'tanH'], 10, 'softmax'), "deep_network")
        ]

        for args, network_id in networks_to_create:
            store_network(Network(*args), network_id, model_dir=temp_db_dir)

        assert len(list_saved_networks(temp_db_dir)) == len(networks_to_create)

        for args, network_id in networks_to_create:
            loaded = fetch_network(network_id, temp_db_dir)
            assert loaded is not None
            assert loaded.sizes == [args[0]] + args[1] + [args[3]]

    def test_stored_network_evaluates_identically(self, simple_network, temp_db_dir):
        """Test store, fetch, then score the same batch."""
        rng = np.random.default_rng(11)
        data = rng.standard_normal((30, 3))
        classes = np.eye(2)[rng.integers(0, 2, size=30)]
        expected = simple_network.accuracy(data, classes)

        store_network(simple_network, "cycle", model_dir=temp_db_dir, accuracy=expected)
        loaded = fetch_network("cycle", temp_db_dir)

        assert loaded.accuracy(data, classes) == expected
        assert get_network_metadata("cycle", temp_db_dir)['accuracy'] == expected


class TestDeleteOldNetworks:
    """Tests for cleanup of old networks."""

    def test_delete_old_networks_basic(self, simple_network, temp_db_dir):
        store_network(simple_network, "old", model_dir=temp_db_dir)
        age_network(temp_db_dir, "old", '-3 days')

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 1
        assert fetch_network("old", temp_db_dir) is None

    def test_delete_old_networks_preserves_recent(self, simple_network, temp_db_dir):
        store_network(simple_network, "recent", model_dir=temp_db_dir)

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 0
        assert fetch_network("recent", temp_db_dir) is not None

    def test_delete_old_networks_mixed_ages(self, simple_network, temp_db_dir):
        old_ids = ["old_1", "old_2"]
        recent_ids = ["recent_1", "recent_2"]
        for network_id in old_ids + recent_ids:
            store_network(simple_network, network_id, model_dir=temp_db_dir)
        for network_id in old_ids:
            age_network(temp_db_dir, network_id, '-3 days')

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == len(old_ids)
        for network_id in old_ids:
            assert fetch_network(network_id, temp_db_dir) is None
        for network_id in recent_ids:
            assert fetch_network(network_id, temp_db_dir) is not None

    def test_delete_old_networks_custom_days(self, simple_network, temp_db_dir):
        store_network(simple_network, "five_days", model_dir=temp_db_dir)
        age_network(temp_db_dir, "five_days", '-5 days')

        assert delete_old_networks(days=7, model_dir=temp_db_dir) == 0
        assert delete_old_networks(days=3, model_dir=temp_db_dir) == 1

    def test_update_keeps_creation_time(self, simple_network, temp_db_dir):
        """Test that re-storing an old network does not make it recent."""
        store_network(simple_network, "aged", model_dir=temp_db_dir)
        age_network(temp_db_dir, "aged", '-3 days')
        store_network(simple_network, "aged", model_dir=temp_db_dir, accuracy=0.5)

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 1

    def test_delete_old_networks_empty_db(self, temp_db_dir):
        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 0

    def test_delete_old_networks_negative_days(self, temp_db_dir):
        with pytest.raises(ValueError) as exc_info:
            delete_old_networks(days=-1, model_dir=temp_db_dir)
        assert "non-negative" in str(exc_info.value)

    def test_delete_old_networks_zero_days(self, simple_network, temp_db_dir):
        store_network(simple_network, "hour_old", model_dir=temp_db_dir)
        age_network(temp_db_dir, "hour_old", '-1 hour')

        assert delete_old_networks(days=0, model_dir=temp_db_dir) == 1

    def test_model_database_method(self, simple_network, temp_db_dir):
        """Test ModelDatabase.delete_old_networks_from_db directly."""
        db = ModelDatabase(db_path=os.path.join(temp_db_dir, "networks.db"))
        db.save_network_to_db(simple_network, "direct")
        age_network(temp_db_dir, "direct", '-3 days')

        assert db.delete_old_networks_from_db(days=2) == 1
        assert db.load_network_from_db("direct") is None
