import json
import subprocess
import unittest
from unittest.mock import MagicMock, patch

import requests

from portr.containers import (
    DockerCLI, DockerHTTP, default_resolver, is_critical_container, parse_ports,
)
from portr.errors import NotFound, RuntimeUnavailable
from portr.models import ContainerInfo, PortMapping

PS_LINES = "\n".join([
    json.dumps({"ID": "4f1c2a9e8b7d6c5b4a39", "Names": "db", "Image": "postgres:16",
                "Status": "Up 2 hours", "Ports": "0.0.0.0:5432->5432/tcp, :::5432->5432/tcp"}),
    "not json",
    json.dumps({"ID": "aa11bb22cc33dd44", "Names": "web,web-alias", "Image": "nginx:latest",
                "State": "running", "Ports": "0.0.0.0:8080->80/tcp"}),
])


def completed(stdout="", stderr="", returncode=0):
    result = MagicMock()
    result.stdout = stdout
    result.stderr = stderr
    result.returncode = returncode
    return result


class TestParsePorts(unittest.TestCase):
    def test_ipv4_and_ipv6_twins_collapse(self):
        self.assertEqual(parse_ports("0.0.0.0:5432->5432/tcp, :::5432->5432/tcp"),
                         (PortMapping(5432, 5432, "tcp"),))

    def test_bracketed_ipv6(self):
        self.assertEqual(parse_ports("[::]:9000->9000/udp"), (PortMapping(9000, 9000, "udp"),))

    def test_ranges_expand(self):
        self.assertEqual(parse_ports("0.0.0.0:8000-8001->8000-8001/tcp"),
                         (PortMapping(8000, 8000, "tcp"), PortMapping(8001, 8001, "tcp")))

    def test_unpublished(self):
        self.assertEqual(parse_ports("6379/tcp"), (PortMapping(None, 6379, "tcp"),))

    def test_empty(self):
        self.assertEqual(parse_ports(""), ())
        self.assertEqual(parse_ports(None), ())


class TestCritical(unittest.TestCase):
    def test_images(self):
        self.assertTrue(is_critical_container(ContainerInfo("1", "db", "postgres:16", "Up")))
        self.assertTrue(is_critical_container(ContainerInfo("1", "q", "bitnami/kafka:3", "Up")))
        self.assertFalse(is_critical_container(ContainerInfo("1", "web", "nginx:latest", "Up")))
        self.assertFalse(is_critical_container(None))


class TestDockerCLI(unittest.TestCase):
    def test_parse(self):
        containers = DockerCLI.parse(PS_LINES)
        self.assertEqual(len(containers), 2)
        db, web = containers
        self.assertEqual(db.id, "4f1c2a9e8b7d")
        self.assertEqual((db.name, db.image, db.status), ("db", "postgres:16", "Up 2 hours"))
        self.assertEqual(db.ports, (PortMapping(5432, 5432, "tcp"),))
        self.assertEqual(web.name, "web")
        self.assertEqual(web.status, "running")
        self.assertEqual(web.ports, (PortMapping(8080, 80, "tcp"),))

    @patch("portr.containers.subprocess.run")
    def test_resolve_many_uses_one_listing(self, mock_run):
        mock_run.return_value = completed(PS_LINES)
        found = DockerCLI().resolve_many([5432, 8080, 3000])
        self.assertEqual(mock_run.call_count, 1)
        self.assertEqual(sorted(found), [5432, 8080])
        self.assertEqual(found[5432].name, "db")
        cmd = mock_run.call_args[0][0]
        self.assertEqual(cmd, ["docker", "ps", "--no-trunc", "--format", "{{json .}}"])

    @patch("portr.containers.subprocess.run")
    def test_resolve_matches_host_port_not_container_port(self, mock_run):
        mock_run.return_value = completed(PS_LINES)
        self.assertIsNone(DockerCLI().resolve(80))
        self.assertEqual(DockerCLI().resolve(8080).name, "web")

    @patch("portr.containers.subprocess.run")
    def test_listing_failure_means_no_container(self, mock_run):
        mock_run.return_value = completed(stderr="Cannot connect to the Docker daemon", returncode=1)
        self.assertEqual(DockerCLI().resolve_many([5432]), {})
        with self.assertRaises(RuntimeUnavailable):
            DockerCLI().list_containers()

    @patch("portr.containers.subprocess.run", side_effect=subprocess.TimeoutExpired("docker", 5))
    def test_timeout(self, mock_run):
        with self.assertRaises(RuntimeUnavailable):
            DockerCLI().list_containers()

    @patch("portr.containers.subprocess.run")
    def test_stop_by_name(self, mock_run):
        mock_run.return_value = completed()
        DockerCLI().stop_container("db")
        self.assertEqual(mock_run.call_args[0][0], ["docker", "stop", "-t", "10", "db"])

    @patch("portr.containers.subprocess.run")
    def test_stop_missing_container(self, mock_run):
        mock_run.return_value = completed(
            stderr="Error response from daemon: No such container: db", returncode=1)
        with self.assertRaises(NotFound):
            DockerCLI().stop_container("db")

    @patch("portr.containers.subprocess.run")
    def test_stop_other_failure(self, mock_run):
        mock_run.return_value = completed(stderr="permission denied", returncode=1)
        with self.assertRaises(RuntimeUnavailable):
            DockerCLI().stop_container("db")


class TestDockerHTTP(unittest.TestCase):
    ROWS = [{
        "Id": "4f1c2a9e8b7d6c5b4a39",
        "Names": ["/db"],
        "Image": "postgres:16",
        "State": "running",
        "Status": "Up 2 hours",
        "Ports": [
            {"IP": "0.0.0.0", "PrivatePort": 5432, "PublicPort": 5432, "Type": "tcp"},
            {"IP": "::", "PrivatePort": 5432, "PublicPort": 5432, "Type": "tcp"},
            {"PrivatePort": 6000, "Type": "tcp"},
        ],
    }]

    def resolver(self):
        session = MagicMock()
        return DockerHTTP("http://10.0.0.2:2375", session=session), session

    def test_from_docker_host(self):
        self.assertEqual(DockerHTTP.from_docker_host("tcp://10.0.0.2:2375").base_url, "http://10.0.0.2:2375")

    def test_list(self):
        resolver, session = self.resolver()
        session.get.return_value.json.return_value = self.ROWS
        containers = resolver.list_containers()
        session.get.assert_called_once_with("http://10.0.0.2:2375/containers/json", timeout=5)
        db = containers[0]
        self.assertEqual((db.id, db.name, db.status), ("4f1c2a9e8b7d", "db", "Up 2 hours"))
        self.assertEqual(db.ports, (PortMapping(5432, 5432, "tcp"), PortMapping(None, 6000, "tcp")))

    def test_unreachable_engine(self):
        resolver, session = self.resolver()
        session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(RuntimeUnavailable):
            resolver.list_containers()
        self.assertEqual(resolver.resolve_many([5432]), {})

    def test_stop(self):
        resolver, session = self.resolver()
        session.post.return_value.status_code = 204
        resolver.stop_container("db")
        args, kwargs = session.post.call_args
        self.assertEqual(args[0], "http://10.0.0.2:2375/containers/db/stop")
        self.assertEqual(kwargs["params"], {"t": 10})

    def test_stop_already_stopped(self):
        resolver, session = self.resolver()
        session.post.return_value.status_code = 304
        resolver.stop_container("db")

    def test_stop_missing(self):
        resolver, session = self.resolver()
        session.post.return_value.status_code = 404
        session.post.return_value.text = "no such container"
        with self.assertRaises(NotFound):
            resolver.stop_container("db")

    def test_stop_server_error(self):
        resolver, session = self.resolver()
        session.post.return_value.status_code = 500
        session.post.return_value.text = "oops"
        with self.assertRaises(RuntimeUnavailable):
            resolver.stop_container("db")


class TestDefaultResolver(unittest.TestCase):
    def test_tcp_docker_host(self):
        resolver = default_resolver(environ={"DOCKER_HOST": "tcp://10.0.0.2:2375"}, which_fn=lambda b: None)
        self.assertIsInstance(resolver, DockerHTTP)

    def test_cli_on_path(self):
        resolver = default_resolver(environ={}, which_fn=lambda b: "/usr/bin/docker")
        self.assertIsInstance(resolver, DockerCLI)

    def test_no_runtime(self):
        self.assertIsNone(default_resolver(environ={}, which_fn=lambda b: None))

    def test_unix_socket_uses_cli(self):
        resolver = default_resolver(environ={"DOCKER_HOST": "unix:///var/run/docker.sock"},
                                    which_fn=lambda b: "/usr/bin/docker")
        self.assertIsInstance(resolver, DockerCLI)


if __name__ == '__main__':
    unittest.main()
