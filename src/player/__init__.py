"""
Player package for the signage screen.
Contains the playlist model, playback scheduler, renderer IPC,
playlist sync service, and status reporting.
"""
