"""
Pipeline steps module for Program Analytics

This module contains all the transformation steps used in the analytics pipeline.
Each submodule provides specific functionality:
- assembly: Joining the flat store frames into one typed answer frame
- validation: Request checks, column checks and data anomaly handling
- classification: Survey type labels from titles
- statistics: Per-question, per-survey, per-program and per-type figures
- reporting: Result structures for the presentation layer
"""
