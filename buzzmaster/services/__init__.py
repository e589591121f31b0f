"""Game state machines: rounds and the press queue, category game, challenges,
thumb war, and the reward collaborator they share.

Routes and socket handlers import from here, keeping transport concerns
separated from core game mechanics. Every operation reads fresh rows,
commits once, and only then publishes.
"""
