"""
The MODEL layer contains data structures and persistence.
It deals with Parameters, Coefficient tables, and I/O.
It does not plot and does not run the solver.
"""
