import argparse
import logging
import sys
import time

from acoustic_core.errors import ConfigurationError
from acoustic_core.hitlog import list_intensity_laws
from acoustic_core.logging_config import setup_logging
from acoustic_core.scene import SimulationSettings
from scene_builders.polygon_scene_builder import PolygonSceneBuilder
from scene_builders.shoebox_scene_builder import ShoeboxSceneBuilder
from simulators.base_simulator import SimulatorFactory

# simulator modules register themselves on import
import simulators.cpu_simulator
import simulators.numba_simulator

SCENES = {
    "shoebox": ShoeboxSceneBuilder,
    "polygon": PolygonSceneBuilder,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Acoustic particle ray tracer')
    parser.add_argument('--simulator', '-s',
                        choices=SimulatorFactory.list_available(),
                        default='cpu_simulator',
                        help='bounce loop implementation')
    parser.add_argument('--scene',
                        choices=sorted(SCENES),
                        default='shoebox',
                        help='shoebox: 3D rectangular room, polygon: 2D regular polygon room')
    parser.add_argument('--samples', '-n', type=int, default=2000,
                        help='number of sound particles')
    parser.add_argument('--amplitude', type=float, default=1.0,
                        help='initial amplitude of every particle')
    parser.add_argument('--frequency', type=float, default=1000.0,
                        help='carried frequency (Hz)')
    parser.add_argument('--speed', type=float, default=343.0,
                        help='speed of sound (distance units per second)')
    parser.add_argument('--epsilon', type=float, default=1e-3,
                        help='amplitude below which a particle is absorbed')
    parser.add_argument('--reflectance', type=float, default=0.8,
                        help='fraction of amplitude kept by every wall')
    parser.add_argument('--seed', type=int, default=None,
                        help='random seed')
    parser.add_argument('--max-rounds', type=int, default=None,
                        help='stop after this many rounds')
    parser.add_argument('--intensity-law', choices=list_intensity_laws(), default='energy',
                        help='how amplitude is turned into recorded intensity')
    parser.add_argument('--output', '-o', default='hits.csv',
                        help='delimited hit log output')
    parser.add_argument('--echogram', default=None,
                        help='optional echogram image output (png)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--log-file', default=None)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level), log_file=args.log_file)

    try:
        settings = SimulationSettings(
            sample_count=args.samples,
            initial_amplitude=args.amplitude,
            frequency=args.frequency,
            speed_of_sound=args.speed,
            epsilon=args.epsilon,
            seed=args.seed,
            max_rounds=args.max_rounds,
            intensity_law=args.intensity_law,
        )
        print(f"Building scene: {args.scene}")
        builder = SCENES[args.scene](reflectance=args.reflectance)
        scene = builder.build_scene()
        scene.add_emitter(builder.create_emitter(settings))

        print(f"Simulator: {args.simulator}")
        simulator = SimulatorFactory.create(args.simulator)
        print(f"Capabilities: {', '.join(simulator.get_capabilities())}")

        start_time = time.time()
        result = simulator.simulate(scene, settings)
        elapsed = time.time() - start_time
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    result.hits.write_delimited(args.output)
    print(f"Hit log written: {args.output} ({len(result.hits)} hits)")

    if args.echogram:
        result.hits.to_echogram().save(args.echogram)
        print(f"Echogram written: {args.echogram}")

    print(f"Emitted {result.emitted}: received {result.received}, absorbed {result.absorbed}, "
          f"orphaned {result.orphaned}, still active {result.active}")
    if result.truncated:
        print(f"Stopped at the round cap ({args.max_rounds}); results are partial")

    minutes = int(elapsed // 60)
    seconds = elapsed % 60
    print(f"Total time: {minutes}m {seconds:.2f}s over {result.rounds} rounds")
    return 0


if __name__ == "__main__":
    sys.exit(main())
