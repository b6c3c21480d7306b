"""
Visualization utilities for Neural Cellular Automata.
Provides functions for capturing growth frames and saving them.
"""

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from PIL import Image
import numpy as np


def generate_frames(automaton, steps, reset=True):
    """Grow from the seed and return the on/off mask of every step."""
    if reset:
        automaton.grid.place_seed()
    frames = [automaton.grid.on_mask()]
    for _ in range(steps):
        automaton.update()
        frames.append(automaton.grid.on_mask())
    return frames


def save_animation(frames, path, duration=100, scale=16):
    """
    Save on/off masks as a black-on-white GIF.

    Args:
        frames: List of bool arrays [H, W]
        path: Output path for GIF
        duration: Duration per frame in ms
        scale: Pixels per cell
    """
    pil_frames = []

    for frame in frames:
        img = np.where(np.asarray(frame, dtype=bool), 0, 255).astype(np.uint8)
        img = np.kron(img, np.ones((scale, scale), dtype=np.uint8))
        pil_frames.append(Image.fromarray(img))

    pil_frames[0].save(
        path,
        save_all=True,
        append_images=pil_frames[1:],
        duration=duration,
        loop=0
    )
    print(f"GIF saved to {path}")


def plot_training_loss(losses, save_path=None, xlabel='Generation'):
    """Plot training loss curve."""
    fig = plt.figure(figsize=(10, 4))
    plt.plot(losses)
    plt.xlabel(xlabel)
    plt.ylabel('Loss')
    plt.title('Training Loss')
    if losses and min(losses) > 0:
        plt.yscale('log')

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Loss plot saved to {save_path}")

    plt.close(fig)
