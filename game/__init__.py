"""
Cannon Goal
Match state machine, session, configuration and the headless player.
"""
