"""Face interpolation schemes: linear, upwind, linearUpwind and the limited family."""
