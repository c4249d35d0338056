"""Hand-made fragmentation graphs shared by the graph and tree builder tests."""

from alphafragtree.formula import MolecularFormula
from alphafragtree.graph import NO_COLOR, PSEUDO_ROOT, FGraph


def random_graph(rng, n_roots=2, n_fragments=12, n_colors=5, density=0.35):
    """Random topologically ordered graph without same-color edges."""
    graph = FGraph(None)
    roots = []
    for r in range(n_roots):
        formula = MolecularFormula.from_dict({"C": 100 + r})
        roots.append(graph.add_vertex(formula, None, NO_COLOR))
        graph.add_edge(PSEUDO_ROOT, roots[-1], float(rng.normal(0.0, 1.0)))
    fragments = []
    for i in range(n_fragments):
        formula = MolecularFormula.from_dict({"C": 50 - i, "H": i})
        fragments.append(graph.add_vertex(formula, None, int(rng.integers(n_colors))))
    for v in fragments:
        for u in roots:
            if rng.random() < density:
                graph.add_edge(u, v, float(rng.normal(0.5, 1.5)))
        for u in fragments:
            if u < v and graph.colors[u] != graph.colors[v] and rng.random() < density:
                graph.add_edge(u, v, float(rng.normal(0.5, 1.5)))
    return graph


def tree_score(graph, tree):
    """Root score plus loss weights of a tree built from ``graph``."""
    root = next(v for v in graph.roots() if graph.formulas[v] == tree.root.formula)
    return graph.root_score(root) + sum(loss.weight for loss in tree.losses)
