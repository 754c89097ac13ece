from collections import defaultdict
from typing import Dict, List, Sequence

import networkx as nx

from .models import TeachingObligation


def build_obligation_graph(obligations: Sequence[TeachingObligation]) -> nx.Graph:
    """Obligations are adjacent when they share a teacher or a class."""
    G = nx.Graph()
    for ob in obligations:
        G.add_node(ob)
    by_teacher: Dict[str, List[TeachingObligation]] = defaultdict(list)
    by_class: Dict[str, List[TeachingObligation]] = defaultdict(list)
    for ob in obligations:
        by_teacher[ob.teacher_id].append(ob)
        by_class[ob.class_id].append(ob)
    for groups in (by_teacher, by_class):
        for key in sorted(groups):
            members = groups[key]
            for i in range(len(members)):
                for j in range(i + 1, len(members)):
                    G.add_edge(members[i], members[j])
    return G

