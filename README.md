# buildtools

Building blocks for pipelines that build container images and roll them out
to Kubernetes. It is a library: it has no command-line programs of its own.

- `buildtools.ci`: CI environments (`Azure`, `Buildkite`, `Github`,
  `Gitlab`, `TeamCity`, and `NoCI` when none is detected) and the build name,
  branch and commit they provide.
- `buildtools.config`: loading of `.buildtools.yaml`, from files or from the
  `BUILDTOOLS_CONTENT` environment variable.
- `buildtools.file`: choosing the `.yaml` manifests and `.sh` scripts that
  apply to a deployment target.
- `buildtools.docker`: image tags that follow Docker's rules, `.dockerignore`
  parsing and Dockerfile stage discovery.
- `buildtools.deploy`: templating and applying the manifests under `k8s/`,
  running the target's scripts and waiting for the rollout.
- `buildtools.args`: argument parsing with the common `--version`,
  `-v/--verbose` and `--config` flags.
- `buildtools.cli`: rendering of colour tags such as `<green>…</green>` for
  log output.

## Installation

Install the package with pip. It needs Python 3.10 or later and PyYAML.

## CI detection

Each CI class reads three environment variables:

| Class       | Commit                | Build name                | Branch                   |
|-------------|-----------------------|---------------------------|--------------------------|
| `Azure`     | `BUILD_SOURCEVERSION` | `BUILD_REPOSITORY_NAME`   | `BUILD_SOURCEBRANCHNAME` |
| `Buildkite` | `BUILDKITE_COMMIT`    | `BUILDKITE_PIPELINE_SLUG` | `BUILDKITE_BRANCH`       |
| `Github`    | `GITHUB_SHA`          | `RUNNER_WORKSPACE`        | `GITHUB_REF`             |
| `Gitlab`    | `CI_COMMIT_SHA`       | `CI_PROJECT_NAME`         | `CI_COMMIT_REF_NAME`     |
| `TeamCity`  | `BUILD_VCS_NUMBER`    | `TEAMCITY_PROJECT_NAME`   | `BUILD_VCS_BRANCH`       |

`CI.from_env(environ)` builds an instance from a mapping (by default
`os.environ`). A CI counts as `configured()` when its build name is set.

- `build_name()` returns `image_name` if one is set, otherwise the build name
  in lower case, otherwise the lower-cased name of the working directory.
  `Github` strips a leading `/home/runner/work/`.
- `branch()` and `commit()` fall back to the `vcs` attribute, a
  `VersionControl`, when the CI leaves them empty. `Github` strips
  `refs/heads/` and `refs/tags/` from the ref.
- `branch_replace_slash()` replaces slashes and spaces with underscores.
- `is_valid(ci)` is true when a commit or a branch is known.

`VersionControl` itself knows neither a branch nor a commit; subclass it and
override `branch()`, `commit()` and `name` to supply your own.

## Configuration

`config.load(directory, vcs=None)` reads configuration:

- If `BUILDTOOLS_CONTENT` is set, its value is decoded as base64, or used as
  plain YAML when it is not valid base64.
- Otherwise every `.buildtools.yaml` in `directory` and each of its parents
  is read. The file nearest to `directory` wins; farther files only fill in
  what is still empty.

Then the CI variables above and `IMAGE_NAME` from the environment are
applied, and `vcs` (or a plain `VersionControl`) is attached.

```yaml
ci:
  imagename: my-image
registry:
  dockerhub:
    namespace: my-namespace
targets:
  local:
    context: docker-desktop
  dev:
    context: docker-desktop
    namespace: dev
    kubeconfig: /path/to/kubeconfig
git:
  name: Build Bot
  email: bot@example.com
  key: /path/to/key
gitops:
  dev:
    url: https://git.example.com/deployments.git
    path: services/app
```

Decoding is strict: unknown fields and values of the wrong kind raise
`ConfigError` with line numbers, e.g.
`yaml: unmarshal errors:\n  line 2: field target not found in type config.Config`.
Registry sections (`dockerhub`, `ecr`, `github`, `gitlab`, `quay`, `gcr`) are
kept as string mappings. At most one of them may have a non-empty value;
otherwise loading raises `ConfigError("registry already defined, please check configuration")`.

A `Config` provides:

- `current_ci()`: the first configured CI in the order Azure, Buildkite,
  Gitlab, TeamCity, Github, or `NoCI`, with `vcs` and `image_name` set;
- `current_target(name)` and `current_gitops(name)`: a copy of the entry, or
  `ConfigError("no target matching <name> found")` /
  `ConfigError("no gitops matching <name> found")`;
- `configured_registries()`: names of registry sections with a value;
- `dump()`: a YAML summary of the CI name, VCS name, configured registry and
  targets.

`unmarshal_strict(content)` decodes YAML into a new `Config` without merging
or reading the environment; `init_empty_config()` returns an empty one.

## Choosing manifests for a target

`file.find_files_for_target(directory, target)` and
`file.find_scripts_for_target(directory, target)` return `os.DirEntry`
objects sorted by name. For target `prod`:

- `deploy.yaml` is used unless `deploy-prod.yaml` exists as well;
- `deploy-prod.yaml` is always used;
- `deploy-dev.yaml` is never used.

Scripts (`*.sh`) are stricter: only scripts named for the target, such as
`setup-prod.sh`, are returned. A missing directory raises `OSError`.

## Docker helpers

```python
from buildtools import docker

docker.slugify_tag("....feature/branch!")          # "featurebranch"
docker.tag("registry.example.com", "app", "v1/x")  # "registry.example.com/app:v1x"
docker.parse_dockerignore(".", "Dockerfile")       # ["k8s", ...lines of .dockerignore]
docker.find_stages("FROM base AS build\nFROM scratch")  # ["build"]
```

`slugify_tag` drops characters other than letters, digits, `.`, `-` and `_`,
strips leading dots and dashes and cuts the tag to 128 characters.
`parse_dockerignore` always includes `k8s`, skips empty lines and the line
naming the Dockerfile itself.

## Deploying

```python
from buildtools.deploy import DeployArgs, deploy

deploy(".", "registry.example.com", "app", "2024-01-01T00:00:00Z",
       client, DeployArgs(target="dev", tag="abc123"))
```

`deploy` chooses the manifests in `<directory>/k8s` for the target, replaces
`${COMMIT}` (the tag), `${TIMESTAMP}` and `${IMAGE}`
(`<registry_url>/<build_name>:<tag>`) in each, skips files that are blank and
passes the rest to `client.apply`. It then runs the target's scripts, logging
their output. Unless `no_wait` is set, and the deployment named `build_name`
exists, it waits with `client.rollout_status(name, timeout)` (default timeout
`"2m"`); on failure it logs the deployment and pod events.

`client` is any object with the methods of the `KubeClient` protocol:
`apply`, `deployment_exists`, `rollout_status`, `deployment_events` and
`pod_events`. A script exiting with a non-zero status or a failed rollout
raises `DeployError`; errors from `client.apply` and from reading files are
raised as they are.

## Argument parsing and output

`args.parse_args(directory, argv, info, parser=None)` parses `argv` with an
optional `argparse.ArgumentParser` plus the common flags, and sends help and
error text to the log. `--help`, `--version` (which logs `str(info)`, e.g.
`Version: 1.0.0, commit none, built at unknown`) and `--config` (which logs
`Config.dump()` of the configuration loaded from `directory`) raise
`ArgsDone`. `-v/--verbose` sets the `buildtools` logger to debug level.
Invalid arguments raise `ValueError`.

`cli.MarkupHandler` is a `logging.Handler` that writes each message with its
colour tags rendered by `cli.render_markup`. `cli.LogWriter(logger)` is a
file-like object logging every written line at info level, and
`cli.is_verbose(logger)` tells whether debug messages get through.

## What this package does not do

- It installs no commands; the functions above are meant to be called from
  your own scripts.
- It does not talk to Kubernetes: you supply the `KubeClient`.
- It does not detect a version-control system; pass a `VersionControl` to
  `config.load` for branch and commit fallbacks.
- It does not build, log in to or push to container registries; registry
  settings are only read and checked.