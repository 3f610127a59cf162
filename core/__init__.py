"""core/ -- Settings and the shared error taxonomy.

Layer rule: core/ is the kernel and imports only stdlib + third-party
libraries. Every other package may import from core/.
"""
