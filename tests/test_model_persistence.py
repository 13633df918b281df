"""
test_model_persistence.py
~~~~~~~~~~~~~~~~~~~~~~~~~~

Unit tests for SQLite-based model persistence.
"""

import math
import os
import sqlite3

import numpy as np
import pytest

from modelfit.activation import ActivationConfig, ActivationKind
from modelfit.network import Network
from modelfit.trainer import Trainer
from modelfit.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    get_network_metadata,
    delete_old_networks,
    ModelDatabase
)


def make_network(layer_sizes, seed=3):
    """Build a network with the given unit counts from input to output."""
    net = Network(layer_sizes[0], layer_sizes[-1],
                  ActivationConfig(ActivationKind.UNIPOLAR), seed=seed)
    for units in layer_sizes[1:-1]:
        net.add_layer(units, ActivationKind.BIPOLAR)
    return net


def age_network(db_path, network_id, modifier):
    """Move a stored network's creation time into the past."""
    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()
    cursor.execute('''
        UPDATE networks
        SET created_at = datetime('now', ?)
        WHERE network_id = ?
    ''', (modifier, network_id))
    conn.commit()
    conn.close()


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def simple_network():
    """Create a network with 3 inputs, 4 hidden units and 2 outputs."""
    return make_network([3, 4, 2])


@pytest.fixture
def trained_network(simple_network):
    """Create a simple network with some training applied."""
    rng = np.random.default_rng(0)
    inputs = rng.standard_normal((10, 3))
    targets = np.zeros((10, 2))
    targets[np.arange(10), np.arange(10) % 2] = 1.0

    trainer = Trainer(learning_constant=0.1, seed=0)
    trainer.add_new_training_set(inputs, targets)
    trainer.train(simple_network, 5)
    return simple_network


@pytest.mark.unit
class TestModelPersistence:
    """Test basic model persistence operations."""

    def test_save_network_creates_database(self, simple_network, temp_db_dir):
        """Test that saving a network creates the database file."""
        success = save_network(
            simple_network,
            "test_network_1",
            model_dir=temp_db_dir,
            trained=False
        )

        assert success is True
        assert os.path.exists(f"{temp_db_dir}/networks.db")

    def test_save_network_with_metadata(self, trained_network, temp_db_dir):
        """Test that network metadata is saved correctly."""
        network_id = "trained_network_1"

        success = save_network(
            trained_network,
            network_id,
            model_dir=temp_db_dir,
            trained=True,
            net_error=0.125
        )

        assert success is True

        metadata = get_network_metadata(network_id, temp_db_dir)
        assert metadata is not None
        assert metadata['network_id'] == network_id
        assert metadata['trained'] is True
        assert metadata['net_error'] == 0.125
        assert metadata['architecture'] == [3, 4, 2]
        assert metadata['weights_shape'] == [[4, 3], [2, 4]]

    def test_load_network_returns_network(self, simple_network, temp_db_dir):
        """Test that loading a network returns a valid Network object."""
        network_id = "test_network_2"

        save_network(simple_network, network_id, model_dir=temp_db_dir)
        loaded_network = load_network(network_id, temp_db_dir)

        assert isinstance(loaded_network, Network)
        assert loaded_network.layer_sizes == simple_network.layer_sizes
        assert loaded_network.output_activation == simple_network.output_activation

    def test_load_nonexistent_network(self, temp_db_dir):
        """Test that loading a non-existent network returns None."""
        assert load_network("nonexistent", temp_db_dir) is None

    def test_load_preserves_weights(self, trained_network, temp_db_dir):
        """Test that saved weights are preserved exactly after loading."""
        network_id = "test_network_3"

        save_network(trained_network, network_id, model_dir=temp_db_dir)
        loaded_network = load_network(network_id, temp_db_dir)

        for layer in range(trained_network.num_layers + 1):
            original = trained_network.get_weighted_connect(layer).weights
            loaded = loaded_network.get_weighted_connect(layer).weights
            assert np.array_equal(original, loaded)

        x = [0.3, -0.2, 0.9]
        assert np.array_equal(trained_network.get_response(x),
                              loaded_network.get_response(x))

    def test_load_corrupt_network_returns_none(self, simple_network, temp_db_dir):
        """Test that unreadable network text is reported as a failed load."""
        save_network(simple_network, "corrupt", model_dir=temp_db_dir)

        conn = sqlite3.connect(os.path.join(temp_db_dir, "networks.db"))
        conn.execute(
            "UPDATE networks SET network_data = '2 1 1 0 1 1 X' "
            "WHERE network_id = 'corrupt'"
        )
        conn.commit()
        conn.close()

        assert load_network("corrupt", temp_db_dir) is None

    def test_list_saved_networks_empty(self, temp_db_dir):
        """Test listing networks when database is empty."""
        assert list_saved_networks(temp_db_dir) == []

    def test_list_saved_networks(self, simple_network, temp_db_dir):
        """Test that listing networks returns correct metadata."""
        save_network(simple_network, "net1", model_dir=temp_db_dir,
                     trained=True, net_error=0.5)
        save_network(simple_network, "net2", model_dir=temp_db_dir, trained=False)

        networks = list_saved_networks(temp_db_dir)

        assert len(networks) == 2
        assert {net['network_id'] for net in networks} == {"net1", "net2"}

    def test_list_saved_networks_includes_metadata(self, simple_network, temp_db_dir):
        """Test that listed networks include all expected metadata fields."""
        network_id = "metadata_test"

        save_network(
            simple_network,
            network_id,
            model_dir=temp_db_dir,
            trained=True,
            net_error=2.5
        )

        network = list_saved_networks(temp_db_dir)[0]

        assert network['network_id'] == network_id
        assert network['architecture'] == [3, 4, 2]
        assert network['trained'] is True
        assert network['net_error'] == 2.5
        assert 'created_at' in network
        assert 'updated_at' in network
        assert 'weights_shape' in network

    def test_delete_network_success(self, simple_network, temp_db_dir):
        """Test successful network deletion."""
        network_id = "delete_test"

        save_network(simple_network, network_id, model_dir=temp_db_dir)
        assert load_network(network_id, temp_db_dir) is not None

        assert delete_network(network_id, temp_db_dir) is True
        assert load_network(network_id, temp_db_dir) is None

    def test_delete_nonexistent_network(self, temp_db_dir):
        """Test that deleting a non-existent network returns False."""
        ModelDatabase(db_path=f'{temp_db_dir}/networks.db')

        assert delete_network("nonexistent", temp_db_dir) is False

    def test_save_untrained_network(self, simple_network, temp_db_dir):
        """Test saving a network that hasn't been trained."""
        network_id = "untrained_test"

        success = save_network(
            simple_network,
            network_id,
            model_dir=temp_db_dir,
            trained=False,
            net_error=None
        )

        assert success is True

        metadata = get_network_metadata(network_id, temp_db_dir)
        assert metadata['trained'] is False
        assert metadata['net_error'] is None

    def test_update_network(self, simple_network, temp_db_dir):
        """Test that saving a network with the same ID updates it."""
        network_id = "update_test"

        save_network(simple_network, network_id, model_dir=temp_db_dir, trained=False)
        assert get_network_metadata(network_id, temp_db_dir)['trained'] is False

        save_network(simple_network, network_id, model_dir=temp_db_dir,
                     trained=True, net_error=0.88)

        metadata = get_network_metadata(network_id, temp_db_dir)
        assert metadata['trained'] is True
        assert metadata['net_error'] == 0.88

        assert len(list_saved_networks(temp_db_dir)) == 1

    @pytest.mark.parametrize("net_error", [-1.0, math.nan, math.inf])
    def test_save_rejects_invalid_net_error(self, simple_network, temp_db_dir, net_error):
        """Test that a negative or non-finite network error is not stored."""
        assert save_network(simple_network, "bad_error", model_dir=temp_db_dir,
                            net_error=net_error) is False
        assert get_network_metadata("bad_error", temp_db_dir) is None

    def test_database_raises_on_invalid_net_error(self, simple_network, temp_db_dir):
        """Test that ModelDatabase reports an invalid network error directly."""
        db = ModelDatabase(db_path=os.path.join(temp_db_dir, "networks.db"))
        with pytest.raises(ValueError):
            db.save_network_to_db(simple_network, "bad", net_error=-0.5)

    def test_save_network_without_layers_fails(self, temp_db_dir):
        """Test that a network without layers cannot be stored."""
        assert save_network(Network(2, 1), "empty", model_dir=temp_db_dir) is False

    @pytest.mark.parametrize("network_id", ["", None, 42])
    def test_invalid_network_id(self, simple_network, temp_db_dir, network_id):
        """Test that invalid identifiers are rejected without touching the database."""
        assert save_network(simple_network, network_id, model_dir=temp_db_dir) is False
        assert load_network(network_id, temp_db_dir) is None
        assert delete_network(network_id, temp_db_dir) is False
        assert get_network_metadata(network_id, temp_db_dir) is None

    def test_stored_text_is_network_serialization(self, simple_network, temp_db_dir):
        """Test that the database holds the plain text serialization."""
        save_network(simple_network, "text_check", model_dir=temp_db_dir)

        conn = sqlite3.connect(os.path.join(temp_db_dir, "networks.db"))
        row = conn.execute(
            "SELECT network_data FROM networks WHERE network_id = 'text_check'"
        ).fetchone()
        conn.close()

        assert row[0] == simple_network.serialize()


@pytest.mark.integration
class TestPersistenceIntegration:
    """Integration tests for model persistence."""

    def test_save_load_train_cycle(self, simple_network, temp_db_dir):
        """Test complete cycle: save, load, train, save again."""
        network_id = "cycle_test"

        save_network(simple_network, network_id, model_dir=temp_db_dir, trained=False)
        loaded_network = load_network(network_id, temp_db_dir)

        trainer = Trainer(learning_constant=0.1, seed=1)
        trainer.add_new_training_set(
            [[0.1, 0.2, 0.3], [0.9, 0.1, 0.4]],
            [[1.0, 0.0], [0.0, 1.0]]
        )
        trainer.train_one_epoch(loaded_network)

        save_network(loaded_network, network_id, model_dir=temp_db_dir,
                     trained=True, net_error=trainer.net_error)

        final_network = load_network(network_id, temp_db_dir)
        metadata = get_network_metadata(network_id, temp_db_dir)

        assert final_network.serialize() == loaded_network.serialize()
        assert metadata['trained'] is True
        assert metadata['net_error'] == trainer.net_error

    def test_multiple_networks_coexist(self, temp_db_dir):
        """Test that multiple networks can coexist in the database."""
        networks_to_create = [
            ([1, 4, 1], "curve_fit"),
            ([3, 4, 2], "simple_network"),
            ([10, 20, 20, 10], "deep_network")
        ]

        for architecture, network_id in networks_to_create:
            save_network(make_network(architecture), network_id, model_dir=temp_db_dir)

        assert len(list_saved_networks(temp_db_dir)) == len(networks_to_create)

        for architecture, network_id in networks_to_create:
            loaded = load_network(network_id, temp_db_dir)
            assert loaded is not None
            assert loaded.layer_sizes == architecture

    def test_concurrent_access_safe(self, simple_network, temp_db_dir):
        """Test that database handles multiple operations safely."""
        network_ids = [f"concurrent_{i}" for i in range(5)]

        for network_id in network_ids:
            save_network(simple_network, network_id, model_dir=temp_db_dir)

        loaded_networks = [load_network(nid, temp_db_dir) for nid in network_ids]
        assert all(net is not None for net in loaded_networks)

        for network_id in network_ids:
            assert delete_network(network_id, temp_db_dir) is True

        assert list_saved_networks(temp_db_dir) == []


class TestDeleteOldNetworks:
    """Tests for automatic cleanup of old networks."""

    def test_delete_old_networks_basic(self, simple_network, temp_db_dir):
        """Test basic delete_old_networks functionality."""
        network_id = "test_network"
        save_network(simple_network, network_id, model_dir=temp_db_dir)
        age_network(os.path.join(temp_db_dir, "networks.db"), network_id, '-3 days')

        deleted_count = delete_old_networks(days=2, model_dir=temp_db_dir)

        assert deleted_count == 1
        assert load_network(network_id, temp_db_dir) is None

    def test_delete_old_networks_preserves_recent(self, simple_network, temp_db_dir):
        """Test that recent networks are not deleted."""
        network_id = "recent_network"
        save_network(simple_network, network_id, model_dir=temp_db_dir)

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 0
        assert load_network(network_id, temp_db_dir) is not None

    def test_delete_old_networks_mixed_ages(self, simple_network, temp_db_dir):
        """Test with a mix of old and recent networks."""
        old_ids = ["old_1", "old_2"]
        recent_ids = ["recent_1", "recent_2"]
        db_path = os.path.join(temp_db_dir, "networks.db")

        for network_id in old_ids + recent_ids:
            save_network(simple_network, network_id, model_dir=temp_db_dir)
        for network_id in old_ids:
            age_network(db_path, network_id, '-3 days')

        deleted_count = delete_old_networks(days=2, model_dir=temp_db_dir)

        assert deleted_count == len(old_ids)
        for network_id in old_ids:
            assert load_network(network_id, temp_db_dir) is None
        for network_id in recent_ids:
            assert load_network(network_id, temp_db_dir) is not None

    def test_delete_old_networks_custom_days(self, simple_network, temp_db_dir):
        """Test delete_old_networks with different day thresholds."""
        network_id = "test_network"
        save_network(simple_network, network_id, model_dir=temp_db_dir)
        age_network(os.path.join(temp_db_dir, "networks.db"), network_id, '-5 days')

        assert delete_old_networks(days=7, model_dir=temp_db_dir) == 0
        assert load_network(network_id, temp_db_dir) is not None

        assert delete_old_networks(days=3, model_dir=temp_db_dir) == 1
        assert load_network(network_id, temp_db_dir) is None

    def test_delete_old_networks_fractional_days(self, simple_network, temp_db_dir):
        """Test that the threshold is not rounded to whole days."""
        network_id = "half_day"
        save_network(simple_network, network_id, model_dir=temp_db_dir)
        age_network(os.path.join(temp_db_dir, "networks.db"), network_id, '-18 hours')

        assert delete_old_networks(days=1, model_dir=temp_db_dir) == 0
        assert delete_old_networks(days=0.5, model_dir=temp_db_dir) == 1

    def test_delete_old_networks_empty_db(self, temp_db_dir):
        """Test delete_old_networks on empty database."""
        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 0

    def test_delete_old_networks_negative_days(self, temp_db_dir):
        """Test that negative days raises ValueError."""
        with pytest.raises(ValueError) as exc_info:
            delete_old_networks(days=-1, model_dir=temp_db_dir)
        assert "non-negative" in str(exc_info.value)

    def test_delete_old_networks_zero_days(self, simple_network, temp_db_dir):
        """Test delete_old_networks with days=0."""
        network_id = "test_network"
        save_network(simple_network, network_id, model_dir=temp_db_dir)
        age_network(os.path.join(temp_db_dir, "networks.db"), network_id, '-1 hour')

        assert delete_old_networks(days=0, model_dir=temp_db_dir) == 1
        assert load_network(network_id, temp_db_dir) is None

    def test_model_database_delete_old_networks_method(self, temp_db_dir):
        """Test ModelDatabase.delete_old_networks_from_db directly."""
        db = ModelDatabase(db_path=os.path.join(temp_db_dir, "networks.db"))
        db.save_network_to_db(make_network([3, 4, 2]), "test_network", trained=False)
        age_network(db.db_path, "test_network", '-3 days')

        assert db.delete_old_networks_from_db(days=2) == 1
        assert db.load_network_from_db("test_network") is None

    def test_delete_old_networks_two_weeks_old(self, simple_network, temp_db_dir):
        """Test that a network 14 days old goes with the default 2-day threshold."""
        network_id = "two_weeks_old_network"
        db_path = os.path.join(temp_db_dir, "networks.db")
        save_network(simple_network, network_id, model_dir=temp_db_dir)
        age_network(db_path, network_id, '-14 days')

        conn = sqlite3.connect(db_path)
        conn.row_factory = sqlite3.Row
        row = conn.execute('''
            SELECT ROUND(julianday('now') - julianday(created_at), 2) as age_days
            FROM networks
            WHERE network_id = ?
        ''', (network_id,)).fetchone()
        conn.close()
        assert row['age_days'] >= 13.9

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 1
        assert load_network(network_id, temp_db_dir) is None
