"""Cohort-Ecology: ecological-process engine for a global cohort ecosystem model.

A grid-based, cohort-resolved simulation core coupling:
  - Thermal activity budgets for ectotherms and endotherms
  - Holling type II herbivory and size-structured predation
  - Arrhenius metabolism, background/senescence/starvation mortality
  - Iteroparous and semelparous reproduction with mass evolution
  - Advective, diffusive and responsive dispersal across grid cells,
    applied through per-cell intent queues at a single-threaded barrier
"""

__version__ = "0.1.0"
