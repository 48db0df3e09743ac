# Reply graph
from threadmine.graph.reply_graph import ReplyGraph, ReplyGraphNode, load_graph, save_graph

__all__ = ["ReplyGraph", "ReplyGraphNode", "load_graph", "save_graph"]
