from __future__ import annotations

FULL_OPEN_TAG = "<?php"
SHORT_OPEN_TAG = "<?"

PRELUDE = """
defined('STDIN') || define('STDIN', fopen('php://stdin', 'r'));
defined('STDOUT') || define('STDOUT', fopen('php://stdout', 'w'));
defined('STDERR') || define('STDERR', fopen('php://stderr', 'w'));

error_reporting(E_ALL & ~E_WARNING & ~E_NOTICE & ~E_DEPRECATED);

"""


def strip_open_tag(raw_source: str) -> str:
    """Remove a PHP open tag only when it is the very first thing in the source.

    Example:
        ```python
        body = strip_open_tag("<?php echo 1;")  # " echo 1;"
        ```
    """
    if raw_source.startswith(FULL_OPEN_TAG):
        return raw_source[len(FULL_OPEN_TAG) :]
    if raw_source.startswith(SHORT_OPEN_TAG):
        return raw_source[len(SHORT_OPEN_TAG) :]
    return raw_source


def preprocess(raw_source: str) -> str:
    """Turn a raw submission into source the embedded interpreter can run.

    The closing tag is left alone; tolerating it is up to whoever compares
    output.

    Example:
        ```python
        source = preprocess("<?php echo 1;")
        assert source.endswith(" echo 1;")
        ```
    """
    return PRELUDE + strip_open_tag(raw_source)
