"""
NCA Training Script

Trains the shared cell network to grow a target pattern from a single
seed cell, using either the genetic algorithm or backpropagation through
time.

Configuration is loaded from config/pipeline.json when present;
command-line flags override it.

Outputs:
- Loss plot (.png)
- Growth animation of the trained network (.gif)
- Hyperparameters used (.json)
"""

import argparse
from pathlib import Path

from config import NCAConfig, load_config, save_config
from nca import Session, center_pixel_target, load_target, parse_target
from nca.visualization import generate_frames, plot_training_loss, save_animation


def resolve_target(pipeline):
    size = pipeline.nca.target_size
    if pipeline.target_image:
        return load_target(pipeline.target_image, size)
    if pipeline.target_text:
        return parse_target(Path(pipeline.target_text).read_text())
    return center_pixel_target(size)


def parse_args():
    parser = argparse.ArgumentParser(description="Train a Neural Cellular Automaton to grow a pattern.")
    parser.add_argument('--config', type=str, default='config/pipeline.json',
                        help='Pipeline JSON config (default: config/pipeline.json)')
    parser.add_argument('--trainer', type=str, choices=['genetic', 'gradient'],
                        help='Optimizer family to use')
    parser.add_argument('--preset', type=str, choices=['small', 'large'],
                        help='small: 9x9 torus, K=2, 5x5 target; large: 100x100 zero-padded, K=5, 10x10 target')
    parser.add_argument('--rounds', type=int, help='Generations (genetic) or iterations (gradient)')
    parser.add_argument('--target-image', type=str, help='Image whose dark pixels form the target')
    parser.add_argument('--target-text', type=str, help="Text file with rows of '#' and '.'")
    parser.add_argument('--seed', type=int, help='Random seed for network initialization and the genetic trainer')
    parser.add_argument('--output', type=str, help='Output base directory')
    return parser.parse_args()


def main():
    args = parse_args()
    pipeline = load_config(args.config)

    if args.trainer:
        pipeline.trainer = args.trainer
    if args.preset == 'small':
        pipeline.nca = NCAConfig.small()
    elif args.preset == 'large':
        pipeline.nca = NCAConfig.large()
    if args.rounds is not None:
        pipeline.n_rounds = args.rounds
    if args.target_image:
        pipeline.target_image = args.target_image
    if args.target_text:
        pipeline.target_text = args.target_text
    if args.seed is not None:
        pipeline.nca.random_seed = args.seed
        pipeline.genetic.random_seed = args.seed
    if args.output:
        pipeline.output_base = args.output

    pipeline.validate()
    pipeline.create_output_dirs()
    target = resolve_target(pipeline)

    print(f"Training NCA with the {pipeline.trainer} trainer")
    print(f"Device: {pipeline.nca.device}")
    print()

    session = Session(pipeline.nca)
    if pipeline.trainer == 'genetic':
        trainer = session.genetic_trainer(pipeline.genetic)
        steps = pipeline.genetic.steps_per_evaluation
        xlabel = 'Generation'
    else:
        trainer = session.gradient_trainer(pipeline.gradient)
        steps = pipeline.gradient.steps_per_iteration
        xlabel = 'Iteration'

    losses = session.train(target, pipeline.n_rounds)
    plot_training_loss(losses, save_path=str(pipeline.loss_plot_path), xlabel=xlabel)

    session.reset_to_seed()
    final_loss = session.run(steps, target)

    print("\nGenerating growth animation...")
    frames = generate_frames(session.automaton, max(steps, pipeline.animation_steps))
    save_animation(frames, str(pipeline.animation_path), duration=1000 // max(1, pipeline.animation_fps))

    save_config(pipeline, str(pipeline.config_path))

    print("\nTraining complete!")
    print(f"  Rounds run: {len(trainer.loss_history)}")
    print(f"  Final MSE after {steps} steps: {final_loss:.6f}")
    print(f"  Loss plot: {pipeline.loss_plot_path}")
    print(f"  Animation: {pipeline.animation_path}")


if __name__ == '__main__':
    main()
