"""
Well-known port classification.

Pure lookup from a port number (and optionally the owning process name) to a
service label and a criticality flag. Killing anything HIGH or CRITICAL
needs the typed confirmation.
"""
from collections import namedtuple

from .models import RiskLevel, ServiceClass, UNKNOWN_SERVICE

KnownService = namedtuple("KnownService", "port name description risk process_hints")

LOW = RiskLevel.LOW
MEDIUM = RiskLevel.MEDIUM
HIGH = RiskLevel.HIGH
CRITICAL = RiskLevel.CRITICAL

KNOWN_SERVICES = (
    # Web servers
    KnownService(80, "HTTP", "Web server (Apache, Nginx, IIS)", MEDIUM, ("nginx", "apache", "httpd", "iis")),
    KnownService(443, "HTTPS", "Secure web server", MEDIUM, ("nginx", "apache", "httpd", "iis")),
    KnownService(8080, "HTTP Alt", "Alternative HTTP / Development server", LOW, ("java", "node", "python")),
    KnownService(8443, "HTTPS Alt", "Alternative HTTPS", LOW, ("java", "node")),
    # Databases
    KnownService(3306, "MySQL", "MySQL/MariaDB database server", CRITICAL, ("mysqld", "mariadbd", "mysql")),
    KnownService(5432, "PostgreSQL", "PostgreSQL database server", CRITICAL, ("postgres", "postgresql")),
    KnownService(27017, "MongoDB", "MongoDB database server", CRITICAL, ("mongod", "mongodb")),
    KnownService(6379, "Redis", "Redis in-memory data store", HIGH, ("redis-server", "redis")),
    KnownService(9200, "Elasticsearch", "Elasticsearch search engine", HIGH, ("elasticsearch", "java")),
    KnownService(1433, "MSSQL", "Microsoft SQL Server", CRITICAL, ("sqlservr", "mssql")),
    KnownService(1521, "Oracle", "Oracle Database", CRITICAL, ("oracle", "tnslsnr")),
    KnownService(5984, "CouchDB", "Apache CouchDB", HIGH, ("couchdb", "beam")),
    KnownService(7474, "Neo4j", "Neo4j Graph Database", HIGH, ("neo4j", "java")),
    # Message queues
    KnownService(5672, "RabbitMQ", "RabbitMQ message broker", HIGH, ("rabbitmq", "beam", "erlang")),
    KnownService(9092, "Kafka", "Apache Kafka message broker", HIGH, ("kafka", "java")),
    KnownService(4222, "NATS", "NATS message broker", MEDIUM, ("nats-server", "nats")),
    # Development tools
    KnownService(3000, "Dev Server", "Node.js / React / Rails dev server", LOW, ("node", "ruby", "rails")),
    KnownService(4200, "Angular", "Angular development server", LOW, ("node", "ng")),
    KnownService(5000, "Flask/ASP.NET", "Flask or ASP.NET development server", LOW, ("python", "flask", "dotnet")),
    KnownService(5173, "Vite", "Vite development server", LOW, ("node", "vite")),
    KnownService(8000, "Django/PHP", "Django or PHP development server", LOW, ("python", "django", "php")),
    KnownService(9000, "PHP-FPM", "PHP FastCGI Process Manager", MEDIUM, ("php-fpm", "php")),
    # Container & orchestration
    KnownService(2375, "Docker", "Docker daemon (unencrypted)", CRITICAL, ("dockerd", "docker")),
    KnownService(2376, "Docker TLS", "Docker daemon (TLS)", CRITICAL, ("dockerd", "docker")),
    KnownService(6443, "Kubernetes", "Kubernetes API server", CRITICAL, ("kube-apiserver", "k8s")),
    KnownService(10250, "Kubelet", "Kubernetes Kubelet", CRITICAL, ("kubelet",)),
    # System services
    KnownService(22, "SSH", "Secure Shell server", CRITICAL, ("sshd", "ssh")),
    KnownService(21, "FTP", "FTP server", MEDIUM, ("vsftpd", "proftpd", "ftpd")),
    KnownService(23, "Telnet", "Telnet server (insecure)", MEDIUM, ("telnetd",)),
    KnownService(25, "SMTP", "Email server (SMTP)", HIGH, ("postfix", "sendmail", "exim")),
    KnownService(53, "DNS", "Domain Name System", CRITICAL, ("named", "bind", "dnsmasq")),
    KnownService(67, "DHCP", "DHCP server", CRITICAL, ("dhcpd", "dnsmasq")),
    KnownService(123, "NTP", "Network Time Protocol", HIGH, ("ntpd", "chronyd")),
    KnownService(135, "RPC", "Windows RPC Endpoint Mapper", CRITICAL, ("svchost",)),
    KnownService(139, "NetBIOS", "Windows NetBIOS Session", HIGH, ("smbd", "svchost")),
    KnownService(445, "SMB", "Windows File Sharing (SMB)", CRITICAL, ("smbd", "svchost", "System")),
    KnownService(3389, "RDP", "Windows Remote Desktop", CRITICAL, ("svchost", "TermService")),
    # Monitoring & observability
    KnownService(9090, "Prometheus", "Prometheus monitoring", MEDIUM, ("prometheus",)),
    KnownService(3100, "Loki", "Grafana Loki log aggregation", MEDIUM, ("loki",)),
    KnownService(3001, "Grafana", "Grafana dashboard (alt port)", MEDIUM, ("grafana",)),
    KnownService(9093, "Alertmanager", "Prometheus Alertmanager", MEDIUM, ("alertmanager",)),
    KnownService(16686, "Jaeger", "Jaeger tracing UI", LOW, ("jaeger",)),
    # AI/ML
    KnownService(11434, "Ollama", "Ollama LLM server", LOW, ("ollama",)),
    KnownService(1234, "LM Studio", "LM Studio local LLM", LOW, ("lm studio", "lmstudio")),
    KnownService(8888, "Jupyter", "Jupyter Notebook server", LOW, ("jupyter", "python")),
    # Caching
    KnownService(11211, "Memcached", "Memcached cache server", HIGH, ("memcached",)),
    # Version control
    KnownService(9418, "Git", "Git protocol daemon", MEDIUM, ("git-daemon",)),
    # Proxy
    KnownService(8888, "Proxy", "HTTP Proxy server", MEDIUM, ("squid", "privoxy")),
    KnownService(1080, "SOCKS", "SOCKS proxy", MEDIUM, ("socks", "dante")),
)

# Hints too common to identify a service without the port
GENERIC_HINTS = frozenset((
    "java", "node", "python", "ruby", "php", "beam", "erlang", "svchost",
    "System", "docker", "ssh", "ng", "dotnet", "bind", "mysql",
))

_BY_PORT = {}
for _svc in KNOWN_SERVICES:
    _BY_PORT.setdefault(_svc.port, []).append(_svc)


def _is_critical(risk):
    return risk in (HIGH, CRITICAL)


def _to_class(svc):
    return ServiceClass(label=svc.name, description=svc.description, risk=svc.risk,
                        is_critical=_is_critical(svc.risk))


def _name_matches(name, hints):
    lowered = name.lower()
    return any(h.lower() == lowered or lowered.startswith(h.lower()) for h in hints)


def lookup(port, name=None):
    """Return the KnownService for a port, using the process name to break ties."""
    candidates = _BY_PORT.get(port)
    if not candidates:
        return None
    if name and len(candidates) > 1:
        for svc in candidates:
            if _name_matches(name, svc.process_hints):
                return svc
    return candidates[0]


def _lookup_by_name(name):
    lowered = name.lower()
    for svc in KNOWN_SERVICES:
        for hint in svc.process_hints:
            if hint in GENERIC_HINTS:
                continue
            if hint.lower() == lowered:
                return svc
    return None


def classify(port, name=None):
    """Total, deterministic classification of a port (and optional process name)."""
    svc = lookup(port, name)
    if svc is None and name:
        svc = _lookup_by_name(name)
    if svc is None:
        return UNKNOWN_SERVICE
    return _to_class(svc)


def requires_confirmation(port):
    svc = lookup(port)
    return svc is not None and _is_critical(svc.risk)


def short_name(port):
    svc = lookup(port)
    return svc.name if svc else None


def all_services():
    return KNOWN_SERVICES
