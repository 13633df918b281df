"""
test_trainer.py
~~~~~~~~~~~~~~~

Unit tests for backpropagation training.
"""

import numpy as np
import pytest

from modelfit.activation import ActivationConfig, ActivationKind
from modelfit.exceptions import NetworkConfigError
from modelfit.network import Network
from modelfit.trainer import Trainer


def set_weights(net, layer, weights):
    connection = net.get_weighted_connect(layer)
    connection.set_weights(weights)
    net.set_weighted_connect(connection, layer)


def make_network(num_inputs=1, num_outputs=1, hidden=3,
                 hidden_kind=ActivationKind.UNIPOLAR,
                 output_kind=ActivationKind.LINEAR, seed=0):
    net = Network(num_inputs, num_outputs, ActivationConfig(output_kind), seed=seed)
    net.add_layer(hidden, hidden_kind)
    return net


@pytest.fixture
def linear_data():
    """Ten examples of y = 2x on [0, 0.9]."""
    x = np.arange(10) / 10.0
    return x.reshape(-1, 1), (2.0 * x).reshape(-1, 1)


@pytest.mark.unit
class TestTrainerSettings:
    """Test trainer parameters and the training set."""

    def test_defaults(self):
        trainer = Trainer()
        assert trainer.learning_constant == 0.5
        assert trainer.momentum == 0.0
        assert trainer.net_error == 0.0
        assert trainer.training_set_size == 0

    @pytest.mark.parametrize("value", [0.0, -0.1])
    def test_invalid_learning_constant_is_ignored(self, value):
        trainer = Trainer(learning_constant=0.2)
        trainer.learning_constant = value
        assert trainer.learning_constant == 0.2

    @pytest.mark.parametrize("value", [0.0, -0.5])
    def test_invalid_momentum_is_ignored(self, value):
        trainer = Trainer(momentum=0.3)
        trainer.momentum = value
        assert trainer.momentum == 0.3

    def test_add_new_training_set_replaces(self, linear_data):
        trainer = Trainer()
        trainer.add_new_training_set(*linear_data)
        trainer.add_new_training_set([[1.0]], [[2.0]])
        assert trainer.training_set_size == 1

    def test_add_to_training_set(self):
        trainer = Trainer()
        trainer.add_to_training_set([0.1, 0.2], [1.0])
        trainer.add_to_training_set([0.3, 0.4], [0.0])
        assert trainer.training_set_size == 2

    def test_mismatched_list_lengths(self):
        with pytest.raises(ValueError):
            Trainer().add_new_training_set([[1.0], [2.0]], [[1.0]])

    def test_mismatched_vector_lengths(self):
        with pytest.raises(ValueError):
            Trainer().add_new_training_set([[1.0], [2.0, 3.0]], [[1.0], [2.0]])
        with pytest.raises(ValueError):
            Trainer().add_new_training_set([[1.0], [2.0]], [[1.0], [2.0, 3.0]])

    def test_add_to_training_set_checks_lengths(self):
        trainer = Trainer()
        trainer.add_to_training_set([0.1, 0.2], [1.0])
        with pytest.raises(ValueError):
            trainer.add_to_training_set([0.1], [1.0])
        assert trainer.training_set_size == 1


@pytest.mark.unit
class TestTrainOneEpoch:
    """Test the weight updates of a training epoch."""

    def test_single_example_update(self):
        """Hidden errors use the weights from before the output update."""
        net = Network(1, 1, ActivationConfig(ActivationKind.LINEAR))
        net.add_layer(1, ActivationKind.LINEAR)
        set_weights(net, 0, [[0.5]])
        set_weights(net, 1, [[2.0]])

        trainer = Trainer(learning_constant=0.1)
        trainer.add_new_training_set([[1.0]], [[2.0]])
        trainer.train_one_epoch(net)

        assert trainer.net_error == pytest.approx(0.5)
        assert net.get_weighted_connect(1).weights[0, 0] == pytest.approx(2.05)
        assert net.get_weighted_connect(0).weights[0, 0] == pytest.approx(0.7)

    def test_error_accumulates_until_reset(self):
        net = Network(1, 1, ActivationConfig(ActivationKind.LINEAR))
        net.add_layer(1, ActivationKind.LINEAR)
        set_weights(net, 0, [[0.0]])
        set_weights(net, 1, [[0.0]])

        # With zero weights nothing changes, so every epoch adds the same error
        trainer = Trainer(learning_constant=0.1)
        trainer.add_new_training_set([[1.0]], [[2.0]])
        trainer.train(net, 3)
        assert trainer.net_error == pytest.approx(6.0)

        trainer.reset_net_error()
        assert trainer.net_error == 0.0

    def test_empty_training_set_is_a_no_op(self):
        net = make_network()
        before = net.serialize()
        trainer = Trainer()

        trainer.train_one_epoch(net)

        assert net.serialize() == before
        assert trainer.net_error == 0.0

    def test_network_without_layers(self, linear_data):
        trainer = Trainer()
        trainer.add_new_training_set(*linear_data)
        with pytest.raises(NetworkConfigError):
            trainer.train_one_epoch(Network(1, 1))

    def test_target_length_must_match_outputs(self):
        trainer = Trainer()
        trainer.add_new_training_set([[0.5]], [[1.0, 2.0]])
        with pytest.raises(ValueError):
            trainer.train_one_epoch(make_network())

    def test_input_length_must_cover_network_inputs(self):
        trainer = Trainer()
        trainer.add_new_training_set([[0.5]], [[1.0]])
        with pytest.raises(ValueError):
            trainer.train_one_epoch(make_network(num_inputs=2))

    def test_same_seeds_give_same_result(self, linear_data):
        first, second = make_network(seed=3), make_network(seed=3)
        for net in (first, second):
            trainer = Trainer(learning_constant=0.1, momentum=0.2, seed=8)
            trainer.add_new_training_set(*linear_data)
            trainer.train(net, 5)
        assert first.serialize() == second.serialize()

    def test_epochs_in_one_call_equal_separate_calls(self, linear_data):
        separate_net, batched_net = make_network(seed=5), make_network(seed=5)

        separate = Trainer(learning_constant=0.1, momentum=0.1, seed=21)
        separate.add_new_training_set(*linear_data)
        for _ in range(10):
            separate.train_one_epoch(separate_net)

        batched = Trainer(learning_constant=0.1, momentum=0.1, seed=21)
        batched.add_new_training_set(*linear_data)
        batched.train(batched_net, 10)

        assert separate_net.serialize() == batched_net.serialize()
        assert separate.net_error == batched.net_error

    def test_momentum_changes_the_updates(self, linear_data):
        plain_net, momentum_net = make_network(seed=6), make_network(seed=6)

        plain = Trainer(learning_constant=0.1, seed=2)
        plain.add_new_training_set(*linear_data)
        plain.train_one_epoch(plain_net)

        with_momentum = Trainer(learning_constant=0.1, momentum=0.5, seed=2)
        with_momentum.add_new_training_set(*linear_data)
        with_momentum.train_one_epoch(momentum_net)

        assert plain_net.serialize() != momentum_net.serialize()


@pytest.mark.integration
class TestTrainingConvergence:
    """Training reduces the network error."""

    @pytest.mark.parametrize("hidden, hidden_kind", [
        (3, ActivationKind.UNIPOLAR),
        (1, ActivationKind.LINEAR),
    ], ids=["unipolar", "linear"])
    def test_fits_a_line(self, linear_data, hidden, hidden_kind):
        net = make_network(hidden=hidden, hidden_kind=hidden_kind, seed=1)
        trainer = Trainer(learning_constant=0.1, seed=4)
        trainer.add_new_training_set(*linear_data)

        trainer.train_one_epoch(net)
        initial_error = trainer.net_error

        for _ in range(999):
            trainer.reset_net_error()
            trainer.train_one_epoch(net)

        assert trainer.net_error < initial_error
        assert net.get_response([0.5])[0] == pytest.approx(1.0, abs=0.3)

    def test_bipolar_hidden_unipolar_output_with_momentum(self):
        net = make_network(hidden=4, hidden_kind=ActivationKind.BIPOLAR,
                           output_kind=ActivationKind.UNIPOLAR, seed=12)
        trainer = Trainer(learning_constant=0.5, momentum=0.1, seed=3)
        trainer.add_new_training_set([[0.1], [0.5], [0.9]], [[0.2], [0.6], [0.8]])

        trainer.train_one_epoch(net)
        first_error = trainer.net_error

        for _ in range(200):
            trainer.reset_net_error()
            trainer.train_one_epoch(net)

        assert trainer.net_error < first_error

    def test_two_inputs_with_momentum(self):
        net = make_network(num_inputs=2, hidden=4,
                           hidden_kind=ActivationKind.BIPOLAR,
                           output_kind=ActivationKind.UNIPOLAR, seed=12)
        inputs = [[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]
        targets = [[0.1], [0.9], [0.9], [0.9]]

        trainer = Trainer(learning_constant=0.5, momentum=0.1, seed=3)
        trainer.add_new_training_set(inputs, targets)

        trainer.train_one_epoch(net)
        first_error = trainer.net_error

        for _ in range(500):
            trainer.reset_net_error()
            trainer.train_one_epoch(net)

        assert trainer.net_error < first_error

    def test_two_hidden_layers_train(self, linear_data):
        net = Network(1, 1, ActivationConfig(ActivationKind.LINEAR), seed=2)
        net.add_layer(3, ActivationKind.TANH)
        net.add_layer(3, ActivationKind.TANH)

        trainer = Trainer(learning_constant=0.05, seed=1)
        trainer.add_new_training_set(*linear_data)
        trainer.train_one_epoch(net)
        initial_error = trainer.net_error

        for _ in range(300):
            trainer.reset_net_error()
            trainer.train_one_epoch(net)

        assert trainer.net_error < initial_error
