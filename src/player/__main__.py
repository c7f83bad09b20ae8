"""
Entry point for: python3 -m src.player

Runs the signage player (playlist sync and playback).
"""

from .player import main

if __name__ == "__main__":
    main()
