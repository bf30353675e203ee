"""Mixture scoring models with differentiable log-scores and hidden-motif discovery."""
