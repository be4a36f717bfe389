"""Verification Test: Chaos Monkey - Random process termination resilience.

Randomly terminate monitored processes between checks and ensure the cluster
never raises: processes that vanished just sample as zero.
"""

import random
import subprocess
import sys

import pytest

from memleak.cluster import Cluster


@pytest.fixture
def processes():
    spawned = [subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"]) for _ in range(20)]
    yield spawned
    for process in spawned:
        if process.poll() is None:
            process.kill()
        process.wait()


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_cluster_survives_process_termination(self, processes):
        """Test checks keep working while monitored processes die."""
        cluster = Cluster(total_size_limit=2**62, free_size_minimum=0)
        for process in processes:
            cluster.add(process.pid)

        cluster.check(lambda *args: None)

        killed = random.sample(processes, 10)
        for process in killed:
            process.kill()
            process.wait()

        for _ in range(3):
            cluster.check(lambda *args: None)

        for process in processes:
            monitor = cluster.processes[process.pid]
            assert monitor.sample_count == 4
            if process in killed:
                assert monitor.current_size == 0
                assert monitor.current_private_size is None
            else:
                assert monitor.current_size > 0

    def test_callback_removal_during_check(self, processes):
        """Test the callback may remove processes while the limit is applied."""
        cluster = Cluster(total_size_limit=0)
        for process in processes:
            cluster.add(process.pid)

        def terminate(process_id, monitor, *size):
            cluster.remove(process_id)

        cluster.check(terminate)

        # Every process with a known private size was selected and removed
        for process_id, monitor in cluster:
            assert monitor.current_private_size is None
