import time
import argparse

from mistflow.config.loader import load_config
from mistflow.fluidenv import FluidEnv, init_backend
from mistflow.utils.message import log, log_table


def parse_args():
    parser = argparse.ArgumentParser(description='MLS-MPM cloud simulation')
    parser.add_argument('--config', type=str, default=None,
                        help='YAML config file merged over the defaults')
    parser.add_argument('--frames', type=int, default=1000,
                        help='Number of frames to simulate')
    parser.add_argument('--fps', type=float, default=60.0,
                        help='Frame rate, sets the per-frame delta time')
    parser.add_argument('--particles', type=int, default=None,
                        help='Active particle count')
    parser.add_argument('--gravity', choices=['back', 'down', 'center', 'device'], default=None,
                        help='Gravity mode')
    parser.add_argument('--arch', choices=['cpu', 'gpu', 'cuda', 'vulkan', 'metal'], default=None,
                        help='Taichi backend')
    parser.add_argument('--profile', action='store_true',
                        help='Time every pipeline stage')
    parser.add_argument('--enable_output', action='store_true',
                        help='Save the particle buffer of every frame')
    parser.add_argument('--output', type=str, default='output/particles',
                        help='Directory for saved frames')
    parser.add_argument('--opts', nargs=argparse.REMAINDER, default=[],
                        help='Config overrides as KEY VALUE pairs')
    return parser.parse_args()


def build_config(args):
    opts = list(args.opts)
    if args.particles is not None:
        opts += ['n_particles', str(args.particles)]
    if args.gravity is not None:
        opts += ['gravity_mode', args.gravity]
    if args.arch is not None:
        opts += ['arch', args.arch]
    if args.profile:
        opts += ['profile', 'True']
    return load_config(args.config, opts)


if __name__ == "__main__":
    args = parse_args()
    cfg = build_config(args)

    log("MLS-MPM simulation configuration:")
    log(f"  Particles: {cfg.n_particles:,} / {cfg.max_particles:,}")
    log(f"  Grid: {cfg.grid_size}^3")
    log(f"  Gravity: {cfg.gravity_mode}")
    log(f"  Backend: {cfg.arch}")

    init_backend(cfg)
    env = FluidEnv(cfg)

    delta = 1.0 / args.fps
    frame_count = 0
    start_time = time.time()

    log("Starting simulation loop... Press Ctrl+C to stop")
    try:
        for idx in range(args.frames):
            env.advance(delta)
            if args.enable_output:
                env.save_frame(idx, args.output)

            frame_count += 1
            if frame_count % 100 == 0:
                elapsed = time.time() - start_time
                log(f"Frame {frame_count}: {frame_count / elapsed:.2f} FPS | Particles: {env.n_active:,}")
                if cfg.profile:
                    log_table("Stage timings (last frame):", env.performance_stats)
    except KeyboardInterrupt:
        log("Simulation stopped by user")
    finally:
        log(f"Simulated {frame_count} frames, t = {env.time:.3f}")
