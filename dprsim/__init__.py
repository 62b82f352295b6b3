"""
DPR statistical combat simulator.

This package contains the probability library, the seeded Monte Carlo
engine, the character build models and the closed-form analyzers (power
attack trade-offs and level progression) used to compare tabletop RPG
character builds by their damage per round.
"""
