"""
Path classification for repository traversal.

Pure functions over file paths: language tag, binary flag, ignorable
directories and the "is code" decision. No filesystem access.
"""

import posixpath
import re

OTHER_LANGUAGE = 'other'

# File extension to language mapping
EXTENSION_MAPPING = {
    '.ts': 'typescript',
    '.tsx': 'typescript',
    '.js': 'javascript',
    '.jsx': 'javascript',
    '.mjs': 'javascript',
    '.cjs': 'javascript',
    '.py': 'python',
    '.java': 'java',
    '.go': 'go',
    '.rs': 'rust',
    '.cpp': 'cpp',
    '.cc': 'cpp',
    '.cxx': 'cpp',
    '.c': 'c',
    '.h': 'c',
    '.cs': 'csharp',
    '.rb': 'ruby',
    '.php': 'php',
    '.swift': 'swift',
    '.kt': 'kotlin',
    '.kts': 'kotlin',
    '.scala': 'scala',
    '.md': 'markdown',
    '.json': 'json',
    '.yaml': 'yaml',
    '.yml': 'yaml',
    '.xml': 'xml',
    '.html': 'html',
    '.htm': 'html',
    '.css': 'css',
    '.scss': 'css',
    '.sass': 'css',
    '.sql': 'sql',
}

# Media, archives and compiled artifacts
BINARY_EXTENSIONS = {
    '.png', '.jpg', '.jpeg', '.gif', '.bmp', '.ico', '.svg',
    '.pdf', '.zip', '.tar', '.gz', '.rar', '.7z',
    '.exe', '.dll', '.so', '.dylib',
    '.mp3', '.mp4', '.avi', '.mov', '.wav',
    '.ttf', '.woff', '.woff2', '.eot',
    '.class', '.jar', '.war',
    '.pyc', '.pyo',
}

# Directory names whose whole subtree is skipped
IGNORED_SEGMENTS = {
    # Version control
    '.git', '.svn', '.hg',
    # Dependencies and build output
    'node_modules', 'vendor', 'deps', 'dist', 'build', 'out', 'target',
    'bin', 'obj', '_build', '.next', '.nuxt', 'coverage',
    # Editors and caches
    '.cache', '.vscode', '.idea', '__pycache__',
}

_SEPARATORS = re.compile(r'[/\\]')


def get_file_extension(file_path: str) -> str:
    """Return the last '.suffix' of the file name (case preserved), or '' if none."""
    name = _SEPARATORS.split(file_path)[-1]
    dot = name.rfind('.')
    if dot < 0 or dot == len(name) - 1:
        return ''
    return name[dot:]


def get_language(extension: str) -> str:
    """Map an extension (with leading dot) to a language tag; unknown -> 'other'."""
    return EXTENSION_MAPPING.get(extension.lower(), OTHER_LANGUAGE)


def is_binary_file(file_path: str) -> bool:
    return get_file_extension(file_path).lower() in BINARY_EXTENSIONS


def is_code_file(file_path: str) -> bool:
    """True when the extension has a language mapping and is not binary."""
    extension = get_file_extension(file_path).lower()
    return extension in EXTENSION_MAPPING and extension not in BINARY_EXTENSIONS


def is_ignored_segment(segment: str) -> bool:
    return segment in IGNORED_SEGMENTS


def should_ignore_path(relative_path: str) -> bool:
    """True if any segment of the path is an ignored directory name."""
    return any(is_ignored_segment(part) for part in _SEPARATORS.split(relative_path))


def sanitize_path(path: str) -> str:
    """Normalize separators to '/' and drop leading slashes."""
    return path.replace('\\', '/').lstrip('/')


def join_relative(parent: str, name: str) -> str:
    """Join a clone-relative directory and an entry name into a sanitized relative path."""
    return sanitize_path(posixpath.join(parent, name) if parent else name)
