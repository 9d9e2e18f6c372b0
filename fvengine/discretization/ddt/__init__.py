"""Time derivative schemes: Euler, backward and steadyState."""
