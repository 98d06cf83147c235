from __future__ import annotations

# Registry reads (npm view, npm ping)
NPM_READ_TIMEOUT_SECONDS = 60.0

# npm pack of a local directory or a registry tarball
NPM_PACK_TIMEOUT_SECONDS = 5 * 60.0

# npm publish (uploads can be slow through corporate proxies)
NPM_PUBLISH_TIMEOUT_SECONDS = 10 * 60.0

# npm ci / npm install of the whole workspace
NPM_INSTALL_TIMEOUT_SECONDS = 30 * 60.0

# One workspace build or bundle script
NPM_BUILD_TIMEOUT_SECONDS = 20 * 60.0
