#!/usr/bin/env python3
"""
Example script: start two nodes by hand and wait for their chains to converge.

Needs a node binary via NETORCH_NODE_BIN or on PATH as ``netorch-node``.
"""
import sys
import time

from netorch import LocalDeployer, PeerSelection, StartNodeOptions, TopologyConfig, wait_for_height_convergence
from netorch.errors import ManualTimeoutError

MAX_HEIGHT_DIFF = 5
CONVERGENCE_TIMEOUT = 60
CONVERGENCE_POLL = 2


def main() -> int:
    cluster = LocalDeployer().manual_cluster(TopologyConfig.with_node_numbers(2, 0))
    with cluster:
        print("starting node a")
        node_a = cluster.start_node_with("a", StartNodeOptions(peers=PeerSelection.none())).api

        time.sleep(30)

        print("starting node c -> a")
        node_c = cluster.start_node_with("c", StartNodeOptions(peers=PeerSelection.named(["node-a"]))).api

        print("waiting for network readiness: cluster a,c")
        cluster.wait_network_ready()

        try:
            wait_for_height_convergence({"node-a": node_a, "node-c": node_c}, MAX_HEIGHT_DIFF,
                                        CONVERGENCE_TIMEOUT, CONVERGENCE_POLL)
        except ManualTimeoutError as e:
            print(f"height diff too large after timeout: {e}")
            return 1

        heights = (node_a.consensus_info().height, node_c.consensus_info().height)
        print(f"final heights: node-a={heights[0]}, node-c={heights[1]}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
