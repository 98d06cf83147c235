from __future__ import annotations

from pinrel.services.release.model import PackageRef


DEFAULT_SCOPE = "@usebruno"
DEFAULT_BUNDLE_SCRIPT = "sandbox:bundle-libraries"

# Forked shims the libraries depend on; they are not built from the source
# tree, so they are mirrored from upstream into the publish registry.
MIRROR_SPECS: tuple[str, ...] = (
    "@usebruno/vm2@^3.9.19",
    "@usebruno/crypto-js@^3.1.9",
)

# Curated topological order. Libraries have no edges between them; the
# runtime depends on the libraries; the consumer depends on the runtime and,
# through pinning, on every library.
LIBRARY_PACKAGES: tuple[PackageRef, ...] = (
    PackageRef(name="@usebruno/common", directory="packages/bruno-common", role="library"),
    PackageRef(name="@usebruno/requests", directory="packages/bruno-requests", role="library"),
    PackageRef(name="@usebruno/query", directory="packages/bruno-query", role="library"),
    PackageRef(name="@usebruno/converters", directory="packages/bruno-converters", role="library"),
    PackageRef(
        name="@usebruno/graphql-docs", directory="packages/bruno-graphql-docs", role="library"
    ),
    PackageRef(name="@usebruno/filestore", directory="packages/bruno-filestore", role="library"),
)

RUNTIME_PACKAGE = PackageRef(
    name="@usebruno/js",
    directory="packages/bruno-js",
    role="runtime",
    bundle_script=DEFAULT_BUNDLE_SCRIPT,
)

CONSUMER_PACKAGE = PackageRef(
    name="@usebruno/cli",
    directory="packages/bruno-cli",
    role="consumer",
)
