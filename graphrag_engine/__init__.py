"""GraphRAG retrieval engine.

Indexes documents into a lightweight knowledge graph (document and entity
nodes, ``mentions`` and pattern-extracted relation edges) and answers
queries with TF‑IDF scoring refined by centrality weighting, community
boosting, hybrid text/graph fusion and extractive synthesis. Graph
analytics (PageRank, label propagation, BFS/DFS traversal) run over the
same store. The FastAPI service lives in ``app.py``; ``graphrag_engine.cli``
is the command-line entry point.
"""

__version__ = "0.1.0"
