from chargeshare.physics.deposits import EventAccumulator
import numpy as np
import pytest

def test_energy_weighted_position():
    acc = EventAccumulator()
    acc.reset()
    acc.add_edep(1.0, [0.0, 0.0, 0.0])
    acc.add_edep(3.0, [4.0, -8.0, 2.0])
    ev = acc.finalize()
    assert ev.has_hit
    assert np.isclose(ev.edep_MeV, 4.0)
    np.testing.assert_allclose(ev.pos, [3.0, -6.0, 1.5])
    assert ev.n_steps == 2

def test_no_positive_deposit_gives_no_hit_sentinel():
    acc = EventAccumulator()
    acc.set_initial_pos([1.0, 2.0, 3.0])
    acc.add_edep(0.0, [5.0, 5.0, 5.0])
    ev = acc.finalize()
    assert not ev.has_hit
    assert ev.edep_MeV == 0.0
    assert np.all(np.isnan(ev.pos))
    np.testing.assert_array_equal(ev.initial_pos, [1.0, 2.0, 3.0])

def test_zero_deposit_does_not_move_position():
    acc = EventAccumulator()
    acc.add_edep(2.0, [1.0, 1.0, 1.0])
    acc.add_edep(0.0, [100.0, 100.0, 100.0])
    np.testing.assert_allclose(acc.finalize().pos, [1.0, 1.0, 1.0])

def test_negative_deposit_rejected():
    acc = EventAccumulator()
    with pytest.raises(ValueError):
        acc.add_edep(-0.1, [0.0, 0.0, 0.0])

def test_reset_clears_previous_event():
    acc = EventAccumulator()
    acc.set_initial_energy(0.1)
    acc.add_edep(1.0, [1.0, 2.0, 3.0])
    assert acc.has_hit
    acc.reset()
    assert not acc.has_hit
    ev = acc.finalize()
    assert not ev.has_hit and np.isnan(ev.initial_energy_MeV)
