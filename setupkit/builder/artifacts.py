"""
Artifact generator.

Renders a configuration into the deployment directory: environment
file, compose manifest, reverse proxy configuration, a sanitized
configuration snapshot and the side files (signing key, certificate
pair, GeoIP database, robots.txt) at their canonical locations.

Generation clears the output directory first, so a directory never
mixes files from two runs. Given the same configuration and work area
the output is byte-identical from run to run.
"""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..config.defaults import (
    CADDY_FILE,
    COMPOSE_FILE,
    ENV_FILE,
    GEOIP_FILE,
    JWT_KEY_FILE,
    NGINX_CONF_DIR,
    ROBOTS_FILE,
    SNAPSHOT_FILE,
    SSL_CERT_FILE,
    SSL_KEY_FILE,
    STAGED_JWT_KEY,
)
from ..config.loader import ConfigLoader, sanitize
from ..config.models import ConfigModel, TLSStrategy
from ..errors import GenerationError
from ..templating import TemplateEngine, TemplateLibrary
from ..utils.logging import get_logger
from .domains import root_domain, split_host_port
from .keys import generate_private_key_pem

logger = get_logger(__name__)

APP_IMAGE = "setupkit/app"
APP_PORT = 3000

# Files readable only by the owner
PRIVATE_FILES = (ENV_FILE, JWT_KEY_FILE, SSL_KEY_FILE)


@dataclass
class GenerationResult:
    """Files written by one generation run."""
    output_dir: Path
    files: List[str] = field(default_factory=list)

    @property
    def paths(self) -> List[Path]:
        return [self.output_dir / f for f in self.files]


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _escape_compose(obj: Any) -> Any:
    """Escape ``$`` in every string so compose does not interpolate it."""
    if isinstance(obj, str):
        return obj.replace("$", "$$")
    elif isinstance(obj, dict):
        return {k: _escape_compose(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_escape_compose(item) for item in obj]
    return obj


def _first_file(*candidates: str) -> Optional[Path]:
    for candidate in candidates:
        if candidate and Path(candidate).is_file():
            return Path(candidate)
    return None


class ArtifactGenerator:
    """
    Renders configurations into deployment artifacts.

    Artifacts are produced in a fixed order. Every rendered template is
    checked for placeholders it leaves unresolved, and the compose
    manifest for unescaped environment references, before anything is
    written for them.
    """

    def __init__(
        self,
        output_dir: Union[str, Path],
        work_dir: Union[str, Path],
        library: Optional[TemplateLibrary] = None,
        engine: Optional[TemplateEngine] = None,
    ):
        """
        Initialize the generator.

        Args:
            output_dir: Default deployment directory
            work_dir: Staging area holding uploaded and generated side files
            library: Template library (defaults to the bundled templates)
            engine: Template engine
        """
        self.output_dir = Path(output_dir)
        self.work_dir = Path(work_dir)
        self.library = library or TemplateLibrary()
        self.engine = engine or TemplateEngine()

    # ============================================================
    # Entry point
    # ============================================================

    def generate(self, cfg: ConfigModel, output_dir: Optional[Union[str, Path]] = None) -> GenerationResult:
        """
        Generate every artifact for a configuration.

        Args:
            cfg: Configuration to render
            output_dir: Target directory (defaults to the generator's)

        Returns:
            Generation result listing the written files

        Raises:
            GenerationError: On missing inputs or unresolved placeholders
        """
        target = Path(output_dir) if output_dir else self.output_dir
        self._check_target(target)

        # Side files may live in the directory about to be cleared
        side_files = self._collect_side_files(cfg)

        self._clear_output_dir(target)
        result = GenerationResult(output_dir=target)
        values = self.build_values(cfg)

        self._write_text(result, ENV_FILE, self.render_env(values))
        compose_text = self.render_compose(cfg)
        self._check_compose(compose_text)
        self._write_text(result, COMPOSE_FILE, compose_text)
        proxy_file, proxy_text = self.render_proxy(cfg, values)
        self._write_text(result, proxy_file, proxy_text)

        for rel_path, data in side_files.items():
            self._write_bytes(result, rel_path, data)
        if ROBOTS_FILE not in side_files:
            self._write_text(result, ROBOTS_FILE, self._render("robots", values))

        self._write_text(result, SNAPSHOT_FILE, self.render_snapshot(cfg, side_files))

        result.files.sort()
        logger.info("Generated %d artifacts in %s", len(result.files), target)
        return result

    # ============================================================
    # Rendering
    # ============================================================

    def build_values(self, cfg: ConfigModel) -> Dict[str, str]:
        """Build the placeholder values shared by every template."""
        app = cfg.app
        strategy = cfg.tls.strategy
        scheme = "http" if strategy == TLSStrategy.NONE else "https"
        geo_staged = cfg.analytics.enabled and self._geo_source(cfg) is not None

        return {
            # Application
            "domain_name": app.domain_name,
            "root_domain": root_domain(app.domain_name),
            "static_host_name": app.static_host_name,
            "static_server_name": split_host_port(app.static_host_name)[0],
            "site_url": f"{scheme}://{app.domain_name}",
            "brand_name": app.brand_name,
            "default_lang": app.default_lang,
            "version": app.version,
            "debug": _flag(app.debug),
            "handle_www": _flag(app.handle_www),
            "cors_allow_origins": ",".join(o.strip() for o in app.cors_allow_origins if o.strip()),
            "jwt_key_container_path": f"/app/{JWT_KEY_FILE}",
            "robots_container_path": f"/app/{ROBOTS_FILE}",
            "cloudflare_site_key": app.cloudflare_site_key,
            "cloudflare_secret": app.cloudflare_secret,
            "ssr_enabled": _flag(app.ssr_enabled),
            "frontend_scripts": ",".join(app.frontend_scripts),
            "frontend_styles": ",".join(app.frontend_styles),
            "frontend_container_id": app.frontend_container_id,
            "app_port": str(APP_PORT),

            # Database: docker services are reached by compose service name
            "db_service_type": cfg.database.service_type,
            "db_host": "postgres" if cfg.uses_docker_database else cfg.database.host,
            "db_port": str(cfg.database.port),
            "db_name": cfg.database.name,
            "db_user": cfg.database.app_user,
            "db_password": cfg.database.app_password,
            "db_super_user": cfg.database.super_user,
            "db_super_password": cfg.database.super_password,

            # Cache
            "cache_service_type": cfg.cache.service_type,
            "cache_host": "redis" if cfg.uses_docker_cache else cfg.cache.host,
            "cache_port": str(cfg.cache.port),
            "cache_user": cfg.cache.user,
            "cache_password": cfg.cache.password,
            "cache_admin_password": cfg.cache.admin_password,

            # Mail
            "smtp_server": cfg.mail.server,
            "smtp_port": str(cfg.mail.port),
            "smtp_user": cfg.mail.user,
            "smtp_password": cfg.mail.password,
            "smtp_sender": cfg.mail.sender,

            # Administrator
            "admin_username": cfg.admin_user.username,
            "admin_email": cfg.admin_user.email,
            "admin_password": cfg.admin_user.password,

            # OAuth
            "google_enabled": _flag(cfg.oauth.google_enabled),
            "google_client_id": cfg.oauth.google_client_id,
            "google_client_secret": cfg.oauth.google_client_secret,
            "github_enabled": _flag(cfg.oauth.github_enabled),
            "github_client_id": cfg.oauth.github_client_id,
            "github_client_secret": cfg.oauth.github_client_secret,
            "oauth_frontend_origin": cfg.oauth.frontend_origin,

            # TLS / proxy / analytics
            "tls_strategy": strategy.value,
            "proxy_type": cfg.reverse_proxy.type,
            "analytics_enabled": _flag(cfg.analytics.enabled),
            "geoip_container_path": f"/app/{GEOIP_FILE}" if geo_staged else "",
        }

    def render_env(self, values: Dict[str, str]) -> str:
        """Render the environment file."""
        return self._render("env", values)

    def render_proxy(self, cfg: ConfigModel, values: Dict[str, str]) -> Tuple[str, str]:
        """
        Render the reverse proxy configuration.

        Returns:
            (relative path, text)
        """
        flavor = cfg.reverse_proxy.type
        strategy = cfg.tls.strategy
        if flavor not in ("caddy", "nginx"):
            raise GenerationError(f"Unsupported reverse proxy: {flavor}")

        proxy_values = dict(values)
        proxy_values.update(self._proxy_values(flavor, strategy, values["root_domain"]))

        www_block = ""
        root = values["root_domain"]
        if cfg.app.handle_www and "." in root:
            www_block = self._render(f"{flavor}/www", proxy_values)
        proxy_values["www_block"] = www_block

        text = self._render(f"{flavor}/site_{strategy.value}", proxy_values)
        if flavor == "caddy":
            return CADDY_FILE, text
        server_name = cfg.app.domain_name or "default"
        return f"{NGINX_CONF_DIR}/{server_name}.conf", text

    @staticmethod
    def _proxy_values(flavor: str, strategy: TLSStrategy, root: str) -> Dict[str, str]:
        """Flavor specific fragments selected by the TLS strategy."""
        tls = strategy != TLSStrategy.NONE
        if flavor == "caddy":
            return {
                "www_scheme": "" if tls else "http://",
                "www_tls": ("\ttls /etc/caddy/ssl/fullchain.pem /etc/caddy/ssl/privkey.pem\n"
                            if strategy == TLSStrategy.MANUAL else ""),
            }

        if strategy == TLSStrategy.AUTO:
            cert_dir = f"/etc/letsencrypt/live/{root}"
        else:
            cert_dir = "/etc/nginx/ssl"
        ssl_directives = (f"ssl_certificate {cert_dir}/fullchain.pem;\n"
                          f"    ssl_certificate_key {cert_dir}/privkey.pem;") if tls else ""
        return {
            "ssl_directives": ssl_directives,
            "www_listen": "443 ssl" if tls else "80",
            "www_tls": ssl_directives,
        }

    def build_compose(self, cfg: ConfigModel) -> Dict[str, Any]:
        """Build the compose manifest as a plain dictionary."""
        strategy = cfg.tls.strategy
        flavor = cfg.reverse_proxy.type
        services: Dict[str, Any] = {}
        volumes: Dict[str, Any] = {}

        app: Dict[str, Any] = {
            "image": f"{APP_IMAGE}:{cfg.app.version or 'latest'}",
            "restart": "unless-stopped",
            "env_file": [ENV_FILE],
            "volumes": [
                "./keys:/app/keys:ro",
                "./static:/app/static:ro",
            ],
        }
        services["app"] = app
        depends_on = []

        if cfg.uses_docker_database:
            services["postgres"] = {
                "image": "postgres:16-alpine",
                "restart": "unless-stopped",
                "environment": {
                    "POSTGRES_USER": cfg.database.super_user,
                    "POSTGRES_PASSWORD": cfg.database.super_password,
                    "POSTGRES_DB": cfg.database.name,
                },
                "volumes": ["postgres-data:/var/lib/postgresql/data"],
            }
            volumes["postgres-data"] = {}
            depends_on.append("postgres")

        if cfg.uses_docker_cache:
            services["redis"] = {
                "image": "redis:7-alpine",
                "restart": "unless-stopped",
                "command": [
                    "redis-server",
                    "--requirepass", cfg.cache.admin_password,
                    "--user", cfg.cache.user, "on", f">{cfg.cache.password}", "~*", "&*", "+@all",
                ],
                "volumes": ["redis-data:/data"],
            }
            volumes["redis-data"] = {}
            depends_on.append("redis")

        if depends_on:
            app["depends_on"] = depends_on

        geo_staged = cfg.analytics.enabled and self._geo_source(cfg) is not None
        if geo_staged:
            app["volumes"].append("./geoip:/app/geoip:ro")

        ports = ["80:80"] if strategy == TLSStrategy.NONE else ["80:80", "443:443"]
        if flavor == "nginx":
            proxy_volumes = [
                f"./{NGINX_CONF_DIR}:/etc/nginx/conf.d:ro",
                "./static:/srv/static:ro",
            ]
            if strategy == TLSStrategy.MANUAL:
                proxy_volumes.append("./ssl:/etc/nginx/ssl:ro")
            elif strategy == TLSStrategy.AUTO:
                proxy_volumes.extend([
                    "./certbot/conf:/etc/letsencrypt:ro",
                    "./certbot/www:/var/www/certbot:ro",
                ])
            log_dir = "/var/log/nginx"
            image = "nginx:1.27-alpine"
        else:
            proxy_volumes = [
                f"./{CADDY_FILE}:/etc/caddy/Caddyfile:ro",
                "./static:/srv/static:ro",
            ]
            if strategy == TLSStrategy.MANUAL:
                proxy_volumes.append("./ssl:/etc/caddy/ssl:ro")
            elif strategy == TLSStrategy.AUTO:
                proxy_volumes.append("caddy-data:/data")
                volumes["caddy-data"] = {}
            log_dir = "/var/log/caddy"
            image = "caddy:2-alpine"

        if cfg.analytics.enabled:
            proxy_volumes.append(f"proxy-logs:{log_dir}")

        services[flavor] = {
            "image": image,
            "restart": "unless-stopped",
            "ports": ports,
            "volumes": proxy_volumes,
            "depends_on": ["app"],
        }

        if flavor == "nginx" and strategy == TLSStrategy.AUTO:
            services["certbot"] = {
                "image": "certbot/certbot:latest",
                "restart": "unless-stopped",
                "volumes": [
                    "./certbot/conf:/etc/letsencrypt",
                    "./certbot/www:/var/www/certbot",
                ],
                "entrypoint": [
                    "/bin/sh", "-c",
                    "trap exit TERM; while :; do certbot renew; sleep 12h & wait $!; done",
                ],
            }

        if cfg.analytics.enabled:
            command = [
                f"--log-file={log_dir}/access.log",
                "--log-format=COMBINED",
                "--real-time-html",
                "--output=/srv/report/index.html",
            ]
            analytics_volumes = [f"proxy-logs:{log_dir}:ro", "./analytics:/srv/report"]
            if geo_staged:
                command.append(f"--geoip-database=/srv/{GEOIP_FILE}")
                analytics_volumes.append("./geoip:/srv/geoip:ro")
            services["analytics"] = {
                "image": "allinurl/goaccess:latest",
                "restart": "unless-stopped",
                "command": command,
                "volumes": analytics_volumes,
                "depends_on": [flavor],
            }
            volumes["proxy-logs"] = {}

        compose: Dict[str, Any] = {"services": services}
        if volumes:
            compose["volumes"] = volumes
        return _escape_compose(compose)

    def render_compose(self, cfg: ConfigModel) -> str:
        """Render the compose manifest."""
        return yaml.safe_dump(
            self.build_compose(cfg),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )

    def render_snapshot(self, cfg: ConfigModel, side_files: Dict[str, bytes]) -> str:
        """
        Render the sanitized configuration snapshot.

        Side file paths are rewritten to their canonical locations
        relative to the output directory.
        """
        snapshot = sanitize(cfg)
        app = snapshot.app
        app.jwt_key_file_path = JWT_KEY_FILE
        app.jwt_key_from_file = True
        app.has_jwt_key_file = True
        app.jwt_key_temp_path = ""

        if ROBOTS_FILE in side_files:
            app.robots_txt_path = ROBOTS_FILE

        if SSL_CERT_FILE in side_files:
            snapshot.tls.cert_path = SSL_CERT_FILE
            snapshot.tls.key_path = SSL_KEY_FILE

        if GEOIP_FILE in side_files:
            snapshot.analytics.geo_db_path = GEOIP_FILE
            snapshot.analytics.has_geo_file = True
            snapshot.analytics.geo_file_temp_path = ""

        return ConfigLoader.dumps(snapshot)

    # ============================================================
    # Side files
    # ============================================================

    def _geo_source(self, cfg: ConfigModel) -> Optional[Path]:
        analytics = cfg.analytics
        return _first_file(analytics.geo_file_temp_path, analytics.geo_db_path)

    def _collect_side_files(self, cfg: ConfigModel) -> Dict[str, bytes]:
        """Read every side file into memory, keyed by canonical path."""
        files: Dict[str, bytes] = {JWT_KEY_FILE: self._signing_key(cfg)}

        if cfg.tls.strategy == TLSStrategy.MANUAL:
            for source, target in ((cfg.tls.cert_path, SSL_CERT_FILE), (cfg.tls.key_path, SSL_KEY_FILE)):
                path = _first_file(source)
                if path is None:
                    raise GenerationError(f"TLS file not found: {source or '(not set)'}")
                files[target] = path.read_bytes()

        if cfg.analytics.enabled:
            geo = self._geo_source(cfg)
            if geo is not None:
                files[GEOIP_FILE] = geo.read_bytes()

        if cfg.app.has_custom_robots_txt:
            robots = _first_file(cfg.app.robots_txt_path)
            if robots is not None:
                files[ROBOTS_FILE] = robots.read_bytes()

        return files

    def _signing_key(self, cfg: ConfigModel) -> bytes:
        """
        Get the signing key.

        Order: uploaded or carried-over key, then the key staged in the
        work area. A new key is generated into the work area when none
        exists, so later runs reuse it.
        """
        source = _first_file(cfg.app.jwt_key_temp_path, cfg.app.jwt_key_file_path)
        if source is not None:
            return source.read_bytes()

        staged = self.work_dir / STAGED_JWT_KEY
        if staged.is_file():
            return staged.read_bytes()

        pem = generate_private_key_pem()
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            staged.write_bytes(pem)
            os.chmod(staged, 0o600)
        except OSError as e:
            raise GenerationError(f"Cannot stage signing key in {self.work_dir}: {e}")
        logger.info("Generated new signing key at %s", staged)
        return pem

    # ============================================================
    # Output directory
    # ============================================================

    def _check_target(self, target: Path) -> None:
        resolved = target.resolve()
        if resolved == Path(resolved.anchor):
            raise GenerationError(f"Refusing to use {target} as output directory")
        work = self.work_dir.resolve()
        if work == resolved or resolved in work.parents:
            raise GenerationError(f"Output directory {target} contains the work area {self.work_dir}")

    def _clear_output_dir(self, target: Path) -> None:
        """Remove everything inside the output directory."""
        try:
            target.mkdir(parents=True, exist_ok=True)
            for child in target.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
        except OSError as e:
            raise GenerationError(f"Cannot clear output directory {target}: {e}")

    # ============================================================
    # Post-render checks
    # ============================================================

    def _render(self, template_name: str, values: Dict[str, str]) -> str:
        """
        Render a named template and fail on anything left unresolved.

        Only the template text is scanned. Operator values such as a
        password holding ``${X}`` are quoted by the env filter and are not
        placeholders.
        """
        template = self.library.get(template_name)
        unresolved = self.engine.unresolved_after_render(template, values)
        if unresolved:
            raise GenerationError(
                f"Template {template_name} has unresolved placeholders: "
                f"{', '.join(sorted(set(unresolved)))}"
            )
        return self.engine.render(template, values)

    def _check_compose(self, text: str) -> None:
        # every string was $-escaped, so any reference left is a bug
        unresolved = self.engine.find_env_references(text)
        if unresolved:
            raise GenerationError(
                f"{COMPOSE_FILE} has unresolved references: {', '.join(sorted(set(unresolved)))}"
            )

    def _write_text(self, result: GenerationResult, rel_path: str, text: str) -> None:
        self._write_bytes(result, rel_path, text.encode("utf-8"))

    def _write_bytes(self, result: GenerationResult, rel_path: str, data: bytes) -> None:
        path = result.output_dir / rel_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            if rel_path in PRIVATE_FILES:
                os.chmod(path, 0o600)
        except OSError as e:
            raise GenerationError(f"Cannot write {path}: {e}")
        result.files.append(rel_path)
        logger.debug("Wrote %s", path)
