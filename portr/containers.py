"""
Container resolver.

Maps published host ports to the running container that owns them and stops
containers by name. Two backends: the docker CLI and the engine HTTP API
(when DOCKER_HOST points at a TCP endpoint). Listing is best effort; any
failure means "no container".
"""
import json
import os
import re
import subprocess
from shutil import which

import requests

from .errors import NotFound, PortrError, ReadFailed, RuntimeUnavailable
from .models import ContainerInfo, PortMapping
from .utils import debug_log

CRITICAL_IMAGES = (
    "postgres", "mysql", "mariadb", "mongo", "redis",
    "elasticsearch", "rabbitmq", "kafka", "zookeeper",
    "consul", "vault", "etcd", "minio",
)

STOP_TIMEOUT = 10

# 0.0.0.0:5432->5432/tcp, [::]:8000-8001->8000-8001/tcp, 6379/tcp
_PORT_RE = re.compile(
    r"^(?:(?P<ip>.*?):(?P<host>\d+)(?:-(?P<host_end>\d+))?->)?"
    r"(?P<cport>\d+)(?:-(?P<cport_end>\d+))?/(?P<proto>\w+)$"
)


def is_critical_container(info):
    """True when the image is a well-known data store or infrastructure service."""
    if info is None:
        return False
    image = info.image.lower()
    return any(c in image for c in CRITICAL_IMAGES)


def parse_ports(text):
    """Parse the Ports column of `docker ps` into PortMapping tuples."""
    mappings = []
    seen = set()
    for chunk in (text or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        m = _PORT_RE.match(chunk)
        if not m:
            continue
        proto = m.group("proto").lower()
        cport = int(m.group("cport"))
        cport_end = int(m.group("cport_end") or cport)
        if m.group("host") is None:
            pairs = [(None, p) for p in range(cport, cport_end + 1)]
        else:
            host = int(m.group("host"))
            host_end = int(m.group("host_end") or host)
            pairs = list(zip(range(host, host_end + 1), range(cport, cport_end + 1)))
        for host_port, container_port in pairs:
            mapping = PortMapping(host_port, container_port, proto)
            # ipv4 and ipv6 bindings of one port are listed separately
            if mapping in seen:
                continue
            seen.add(mapping)
            mappings.append(mapping)
    return tuple(mappings)


class ContainerResolver:
    """Base resolver. Subclasses implement list_containers() and stop_container()."""
    name = "base"

    def list_containers(self):
        raise NotImplementedError

    def stop_container(self, name):
        raise NotImplementedError

    def resolve_many(self, ports):
        """One runtime listing for all ports; returns {host_port: ContainerInfo}."""
        wanted = set(ports)
        if not wanted:
            return {}
        try:
            containers = self.list_containers()
        except PortrError as e:
            debug_log(f"CONTAINERS: {self.name} listing failed: {e}")
            return {}
        found = {}
        for info in containers:
            for mapping in info.ports:
                if mapping.host_port in wanted and mapping.host_port not in found:
                    found[mapping.host_port] = info
        return found

    def resolve(self, port):
        return self.resolve_many([port]).get(port)


class DockerCLI(ContainerResolver):
    name = "docker-cli"

    def __init__(self, binary="docker", timeout=5):
        self.binary = binary
        self.timeout = timeout

    def _run(self, args, timeout=None):
        cmd = [self.binary] + args
        try:
            return subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=timeout or self.timeout
            )
        except FileNotFoundError as e:
            raise RuntimeUnavailable("docker is not installed", str(e))
        except subprocess.TimeoutExpired as e:
            raise RuntimeUnavailable("docker did not answer in time", str(e))
        except OSError as e:
            raise RuntimeUnavailable("cannot run docker", str(e))

    def list_containers(self):
        result = self._run(["ps", "--no-trunc", "--format", "{{json .}}"])
        if result.returncode != 0:
            raise RuntimeUnavailable("docker ps failed", result.stderr.strip())
        return self.parse(result.stdout)

    @staticmethod
    def parse(output):
        containers = []
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                row = json.loads(line)
            except ValueError:
                debug_log(f"CONTAINERS: unparsable docker ps line: {line[:80]}")
                continue
            name = row.get("Names", "").split(",")[0]
            containers.append(ContainerInfo(
                id=row.get("ID", "")[:12],
                name=name,
                image=row.get("Image", ""),
                status=row.get("Status") or row.get("State", ""),
                ports=parse_ports(row.get("Ports", "")),
            ))
        return containers

    def stop_container(self, name):
        result = self._run(["stop", "-t", str(STOP_TIMEOUT), name], timeout=STOP_TIMEOUT + 20)
        if result.returncode == 0:
            debug_log(f"CONTAINERS: stopped {name}")
            return
        err = result.stderr.strip()
        if "no such container" in err.lower():
            raise NotFound(f"container '{name}' not found", err)
        raise RuntimeUnavailable(f"could not stop container '{name}'", err)


class DockerHTTP(ContainerResolver):
    """Engine API over TCP, used when DOCKER_HOST=tcp://host:port."""
    name = "docker-http"

    def __init__(self, base_url, timeout=5, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_docker_host(cls, docker_host, **kwargs):
        if docker_host.startswith("tcp://"):
            docker_host = "http://" + docker_host[len("tcp://"):]
        return cls(docker_host, **kwargs)

    def list_containers(self):
        try:
            r = self.session.get(f"{self.base_url}/containers/json", timeout=self.timeout)
            r.raise_for_status()
            rows = r.json()
        except requests.RequestException as e:
            raise RuntimeUnavailable("docker engine is not reachable", str(e))
        except ValueError as e:
            raise ReadFailed("docker engine returned invalid JSON", str(e))
        return [self.normalize(row) for row in rows]

    @staticmethod
    def normalize(row):
        names = row.get("Names") or [""]
        mappings = []
        seen = set()
        for p in row.get("Ports") or []:
            if "PrivatePort" not in p:
                continue
            mapping = PortMapping(p.get("PublicPort"), p["PrivatePort"], p.get("Type", "tcp"))
            if mapping in seen:
                continue
            seen.add(mapping)
            mappings.append(mapping)
        return ContainerInfo(
            id=row.get("Id", "")[:12],
            name=names[0].lstrip("/"),
            image=row.get("Image", ""),
            status=row.get("Status") or row.get("State", ""),
            ports=tuple(mappings),
        )

    def stop_container(self, name):
        url = f"{self.base_url}/containers/{name}/stop"
        try:
            r = self.session.post(url, params={"t": STOP_TIMEOUT}, timeout=STOP_TIMEOUT + 20)
        except requests.RequestException as e:
            raise RuntimeUnavailable("docker engine is not reachable", str(e))
        # 304: already stopped
        if r.status_code in (204, 304):
            debug_log(f"CONTAINERS: stopped {name}")
            return
        if r.status_code == 404:
            raise NotFound(f"container '{name}' not found", r.text[:200])
        raise RuntimeUnavailable(f"could not stop container '{name}'",
                                 f"HTTP {r.status_code}: {r.text[:200]}")


def default_resolver(environ=None, which_fn=which):
    """Pick a backend from the environment, or None when no runtime is around."""
    environ = os.environ if environ is None else environ
    docker_host = environ.get("DOCKER_HOST", "")
    if docker_host.startswith(("tcp://", "http://", "https://")):
        debug_log(f"CONTAINERS: using engine API at {docker_host}")
        return DockerHTTP.from_docker_host(docker_host)
    if which_fn("docker"):
        return DockerCLI()
    debug_log("CONTAINERS: no container runtime found")
    return None
