"""Cell gradient schemes: Gauss and leastSquares."""
