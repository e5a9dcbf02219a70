import html
import re

from hostpanel.errors import ValidationError

_SLUG_STRIP = re.compile(r"[^A-Za-z0-9.-]")
_ALLOWED_DOMAIN = re.compile(r"^[A-Za-z0-9.-]+$")
_LABEL = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")
# Characters that would let a path break out of an nginx directive
_UNSAFE_PATH_CHARS = re.compile(r"[\s;{}\"'$`\\]")

DEFAULT_PHP_FPM_SOCKET = "unix:/var/run/php/php8.1-fpm.sock"


def slugify(domain: str) -> str:
    """Derive the filesystem-safe site name from a domain."""
    return _SLUG_STRIP.sub("", domain or "")


def validate_domain(domain: str) -> str:
    """
    Return the domain unchanged if it is a well-formed host name made only of
    [A-Za-z0-9.-], otherwise raise ValidationError.
    """
    if not domain:
        raise ValidationError("Domain is required")
    if not _ALLOWED_DOMAIN.match(domain):
        raise ValidationError(f"Domain {domain!r} contains characters outside [A-Za-z0-9.-]")
    if len(domain) > 253:
        raise ValidationError("Domain is longer than 253 characters")
    for label in domain.split("."):
        if not _LABEL.match(label):
            raise ValidationError(f"Domain {domain!r} is not a valid host name")
    return domain


def validate_document_root(path: str) -> str:
    if not path or not path.startswith("/"):
        raise ValidationError("Document root must be an absolute path")
    if _UNSAFE_PATH_CHARS.search(path):
        raise ValidationError(f"Document root {path!r} contains unsupported characters")
    if any(part == ".." for part in path.split("/")):
        raise ValidationError("Document root must not contain '..' segments")
    return path


def render_vhost(
    domain: str,
    document_root: str,
    php_enabled: bool = False,
    php_fpm_socket: str = DEFAULT_PHP_FPM_SOCKET,
) -> str:
    """
    Render an nginx server block for a site.

    Pure and deterministic: the same arguments always produce the same text.
    Raises ValidationError instead of rendering anything for an unsafe domain
    or document root.
    """
    server_name = validate_domain(domain)
    root = validate_document_root(document_root)
    index = "index.html index.htm index.php" if php_enabled else "index.html index.htm"

    lines = [
        "server {",
        "    listen 80;",
        "    listen [::]:80;",
        "",
        f"    server_name {server_name};",
        f"    root {root};",
        f"    index {index};",
        "",
        "    # Security headers",
        "    add_header X-Frame-Options DENY always;",
        "    add_header X-Content-Type-Options nosniff always;",
        '    add_header X-XSS-Protection "1; mode=block" always;',
        '    add_header Referrer-Policy "strict-origin-when-cross-origin" always;',
        "",
        "    location / {",
        "        try_files $uri $uri/ =404;",
        "    }",
    ]

    if php_enabled:
        lines += [
            "",
            "    location ~ \\.php$ {",
            "        include snippets/fastcgi-php.conf;",
            f"        fastcgi_pass {php_fpm_socket};",
            "    }",
        ]

    lines += [
        "",
        "    location ~ /\\.ht {",
        "        deny all;",
        "    }",
        "",
        "    location ~ /\\.(git|svn) {",
        "        deny all;",
        "    }",
        "}",
        "",
    ]
    return "\n".join(lines)


def render_index_page(domain: str, document_root: str, php_enabled: bool, ssl_enabled: bool) -> str:
    """Placeholder index.html written into a new document root."""
    name = html.escape(domain)
    badges = []
    if php_enabled:
        badges.append('<span class="badge">PHP Enabled</span>')
    if ssl_enabled:
        badges.append('<span class="badge">SSL Ready</span>')

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Welcome to {name}!</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
               margin: 0; padding: 40px; background: #f8f9fa; text-align: center; }}
        .container {{ max-width: 600px; margin: 0 auto; background: white; padding: 40px;
                     border-radius: 8px; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }}
        .badge {{ display: inline-block; padding: 4px 8px; background: #27ae60; color: white;
                 border-radius: 4px; font-size: 12px; margin: 5px; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Site {name} is online</h1>
        <p>The site was set up successfully.</p>
        {' '.join(badges)}
        <p><strong>Directory:</strong> <code>{html.escape(document_root)}</code></p>
        <p>Upload your files to get started.</p>
    </div>
</body>
</html>
"""
