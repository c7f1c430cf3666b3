"""Motor de escrutinio de actas electorales.

Acta lifecycle engine: validation, state machine, tally and persistence for
manually counted ballots.
"""

__version__ = "0.1.0"
