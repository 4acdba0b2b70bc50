import logging

import pytest

import main
from acoustic_core.emitter import Emitter
from acoustic_core.errors import ConfigurationError
from acoustic_core.logging_config import NAMESPACES
from acoustic_core.math import Vec
from acoustic_core.scene import Scene, SimulationSettings, triangle_fan
from acoustic_core.sound import SoundState
from scene_builders.corridor_scene_builder import CorridorSceneBuilder
from scene_builders.polygon_scene_builder import PolygonSceneBuilder
from scene_builders.shoebox_scene_builder import ShoeboxSceneBuilder
from simulators.base_simulator import SimulatorFactory
from simulators.cpu_simulator import CPUSimulator

SPEED = 343.0


def _make_corridor_sound(emitter_origin=Vec(5.0, 0.3, -0.7)):
    return Emitter(emitter_origin, 1).emit_towards(Vec(1, 0, 0))


def test_direct_receiver_hit():
    scene = Scene()
    scene.add_receiver("mic", Vec(10, 0, 0), 1.0)
    sound = Emitter(Vec(0, 0, 0), 1).emit_towards(Vec(1, 0, 0))

    result = CPUSimulator().simulate(scene, SimulationSettings(), sounds=[sound])

    assert result.rounds == 1
    assert result.received == 1
    assert len(result.hits) == 1
    record = result.hits[0]
    assert record.receiver == "mic"
    assert record.time == pytest.approx(9.0 / SPEED)
    assert record.intensity == pytest.approx(1.0)
    assert record.bounces == 0
    assert result.hits.frozen


def test_corridor_decays_until_absorbed():
    scene = CorridorSceneBuilder(separation=10.0, reflectance=0.5).build_scene()
    settings = SimulationSettings(epsilon=0.01, record_traces=True)

    result = CPUSimulator().simulate(scene, settings, sounds=[_make_corridor_sound()])

    assert result.absorbed == 1
    assert result.rounds == 7
    assert len(result.hits) == 0

    trace = result.traces[0]
    amplitudes = [p.amplitude for p in trace]
    assert amplitudes[:7] == pytest.approx([0.5 ** k for k in range(7)])
    assert all(a >= b for a, b in zip(amplitudes, amplitudes[1:]))
    assert trace[-1].state is SoundState.ABSORBED
    assert all(p.state is SoundState.ACTIVE for p in trace[:-1])
    # 5 units to the far wall then 10 per crossing
    assert [p.time for p in trace[1:3]] == pytest.approx([5 / SPEED, 15 / SPEED])
    assert trace[1].position.x == pytest.approx(10.0)
    # bounced sounds are lifted off the wall they left
    assert trace[2].position.x == pytest.approx(settings.hit_offset)


def test_corridor_receiver_records_bounce_count():
    builder = CorridorSceneBuilder(separation=10.0, reflectance=0.5,
                                   receiver_position=Vec(2.0, 0.3, -0.7), receiver_radius=0.5)
    scene = builder.build_scene()

    result = CPUSimulator().simulate(scene, SimulationSettings(), sounds=[_make_corridor_sound()])

    # out to x = 10, back to the receiver surface at x = 2.5
    assert result.received == 1
    record = result.hits[0]
    assert record.bounces == 1
    assert record.time == pytest.approx((5.0 + 7.5) / SPEED)
    assert record.intensity == pytest.approx(0.25)


def test_shoebox_conserves_sounds():
    builder = ShoeboxSceneBuilder(reflectance=0.5, receiver_radius=0.5)
    scene = builder.build_scene()
    settings = SimulationSettings(sample_count=300, epsilon=0.01, seed=3)
    scene.add_emitter(builder.create_emitter(settings))

    result = CPUSimulator().simulate(scene, settings)

    assert result.emitted == 300
    assert not result.truncated
    assert result.active == 0
    assert result.orphaned == 0
    assert result.received + result.absorbed == result.emitted
    assert result.received == len(result.hits) > 0
    times, intensities = result.hits.as_arrays()
    assert (times > 0).all()
    assert (intensities <= 1.0).all()


def _make_edge_grazing_sound():
    # meets the y = W wall 1e-7 short of the x = L edge, then heads into x = L
    return Emitter(Vec(7.0, 5.0, 1.5), 1).emit_towards(Vec(1 - 1e-7, 1.0, 0.3))


def test_sound_near_a_room_edge_stays_inside(caplog):
    scene = ShoeboxSceneBuilder(reflectance=0.5).build_scene()
    settings = SimulationSettings(epsilon=0.01, record_traces=True)

    with caplog.at_level(logging.WARNING):
        result = CPUSimulator().simulate(scene, settings, sounds=[_make_edge_grazing_sound()])

    assert result.orphaned == 0
    assert result.received + result.absorbed == 1
    assert "hit nothing" not in caplog.text
    trace = result.traces[0]
    assert trace[1].position.y == pytest.approx(6.0)
    assert trace[2].position.x == pytest.approx(8.0)
    assert trace[2].time - trace[1].time < 1e-8


def test_larger_closed_room_loses_no_sounds():
    builder = ShoeboxSceneBuilder(reflectance=0.9)
    scene = builder.build_scene()
    settings = SimulationSettings(sample_count=400, epsilon=0.02, seed=1)
    scene.add_emitter(builder.create_emitter(settings))

    result = CPUSimulator().simulate(scene, settings)

    assert result.orphaned == 0
    assert result.received + result.absorbed == 400


def test_shoebox_is_reproducible_for_a_seed():
    builder = ShoeboxSceneBuilder(reflectance=0.6, receiver_radius=0.5)
    settings = SimulationSettings(sample_count=100, epsilon=0.01, seed=11,
                                  source_position=builder.source_position)

    first = CPUSimulator().simulate(builder.build_scene(), settings)
    second = CPUSimulator().simulate(builder.build_scene(), settings)

    assert first.hits.records == second.hits.records
    assert (first.received, first.absorbed, first.orphaned) == \
        (second.received, second.absorbed, second.orphaned)


def test_explicit_sounds_are_used_as_given():
    scene = ShoeboxSceneBuilder().build_scene()
    sounds = Emitter(Vec(2, 3, 1.5), 1).emit_towards(Vec(1, 0, 0), sound_id=77)

    result = CPUSimulator().simulate(scene, SimulationSettings(), sounds=[sounds])

    assert result.emitted == 1
    # straight down the room axis into the receiver
    assert [r.sound_id for r in result.hits] == [77]
    assert result.hits[0].time == pytest.approx((6.0 - 0.25 - 2.0) / SPEED)


def test_open_scene_orphans_with_warning(caplog):
    scene = Scene()
    scene.add_surface("wall", 0.9, triangle_fan([Vec(5, -1, -1), Vec(5, 1, -1), Vec(5, 1, 1), Vec(5, -1, 1)]))
    away = Emitter(Vec(0, 0, 0), 1).emit_towards(Vec(-1, 0, 0))

    with caplog.at_level(logging.WARNING):
        result = CPUSimulator().simulate(scene, SimulationSettings(), sounds=[away])

    assert result.orphaned == 1
    assert result.received == result.absorbed == 0
    assert "hit nothing" in caplog.text


def test_round_cap_truncates_with_warning(caplog):
    scene = CorridorSceneBuilder(reflectance=1.0).build_scene()
    settings = SimulationSettings(max_rounds=5)

    with caplog.at_level(logging.WARNING):
        result = CPUSimulator().simulate(scene, settings, sounds=[_make_corridor_sound()])

    assert result.truncated
    assert result.rounds == 5
    assert result.active == 1
    assert result.terminated == 0
    assert "still active" in caplog.text


def test_empty_emission_finishes_immediately():
    scene = ShoeboxSceneBuilder().build_scene()
    result = CPUSimulator().simulate(scene, SimulationSettings(sample_count=0))
    assert result.emitted == 0
    assert result.rounds == 0
    assert len(result.hits) == 0


def test_polygon_room_in_2d():
    builder = PolygonSceneBuilder(n_sides=6, radius=5.0, reflectance=0.8)
    scene = builder.build_scene()
    settings = SimulationSettings(sample_count=200, seed=5)
    scene.add_emitter(builder.create_emitter(settings))

    result = CPUSimulator().simulate(scene, settings)

    assert scene.dim == 2
    assert result.received + result.absorbed + result.orphaned == 200
    assert result.received > 0
    assert all(r.receiver == "receiver" for r in result.hits)


def test_source_dimension_must_match_scene():
    scene = PolygonSceneBuilder().build_scene()
    settings = SimulationSettings(sample_count=10, source_position=Vec(-2.5, 0, 7))
    with pytest.raises(ConfigurationError):
        CPUSimulator().simulate(scene, settings)

    sound = Emitter(Vec(0, 0, 0), 1).emit_towards(Vec(1, 0, 0))
    with pytest.raises(ConfigurationError):
        CPUSimulator().simulate(scene, SimulationSettings(), sounds=[sound])


def test_fully_absorbing_wall_stops_sound_at_first_hit():
    scene = CorridorSceneBuilder(reflectance=0.0).build_scene()
    result = CPUSimulator().simulate(scene, SimulationSettings(max_rounds=10),
                                     sounds=[_make_corridor_sound()])
    assert result.absorbed == 1
    assert result.rounds == 1
    assert not result.truncated


def test_polygon_needs_three_sides():
    with pytest.raises(ConfigurationError):
        PolygonSceneBuilder(n_sides=2)


def test_shoebox_rejects_unknown_wall():
    with pytest.raises(ConfigurationError):
        ShoeboxSceneBuilder(reflectance={"roof": 0.5})


def test_shoebox_per_wall_reflectance():
    scene = ShoeboxSceneBuilder(reflectance={"floor": 0.1, "ceiling": 0.2}).build_scene()
    by_name = {o.name: o for o in scene.objects}
    assert by_name["floor"].reflectance == 0.1
    assert by_name["ceiling"].reflectance == 0.2
    assert by_name["left"].reflectance == 0.8
    assert scene.primitive_count() == 13


def test_shoebox_default_reflectance_fills_missing_walls():
    builder = ShoeboxSceneBuilder(reflectance={"floor": 0.1}, default_reflectance=0.3)
    assert builder.wall_reflectance("floor") == 0.1
    assert builder.wall_reflectance("ceiling") == 0.3
    assert {o.name: o.reflectance for o in builder.build_scene().surfaces}["right"] == 0.3


def test_factory():
    assert {"cpu_simulator", "numba_simulator"} <= set(SimulatorFactory.list_available())
    simulator = SimulatorFactory.create("cpu_simulator")
    assert simulator.get_name() == "cpu_simulator"
    assert simulator.supports("segments_2d")
    with pytest.raises(ValueError):
        SimulatorFactory.create("gpu_simulator")


@pytest.fixture
def restore_logging():
    yield
    for name in NAMESPACES:
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)


def test_cli_writes_outputs(tmp_path, restore_logging, capsys):
    csv_path = tmp_path / "hits.csv"
    png_path = tmp_path / "echogram.png"

    code = main.main(["--samples", "100", "--seed", "2", "--reflectance", "0.5",
                      "--epsilon", "0.01", "--output", str(csv_path), "--echogram", str(png_path)])

    assert code == 0
    assert csv_path.read_text().startswith("time,intensity,receiver,sound_id,bounces")
    assert png_path.exists()
    assert "Emitted 100" in capsys.readouterr().out


def test_cli_reports_configuration_errors(tmp_path, restore_logging):
    code = main.main(["--reflectance", "1.5", "--output", str(tmp_path / "hits.csv")])
    assert code == 2
    assert not (tmp_path / "hits.csv").exists()
