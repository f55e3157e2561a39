"""EdgePoly — backtesting engine for prediction-market trading strategies."""

__version__ = "0.1.0"
