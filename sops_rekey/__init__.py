"""
Re-encrypt SOPS secrets in a git repository for everyone who has access to it.

The private key must be able to decrypt every secret file. Each file is
decrypted to check it is a valid secret, then encrypted again for the
private key, every user's public keys and the service key. A file that
can't be re-encrypted is reported, and the remaining files are still
re-encrypted.

Options are read from the same environment variables a GitHub Action
receives its inputs in:

\b
    INPUT_PRIVATE_KEY      base64 encoded private key (required)
    INPUT_PUBLIC_KEYS      {"users": [{"login": ..., "gpg_keys_base64": [...]}]}
    INPUT_FLUX_KEY         base64 encoded public key for a deployment service
    INPUT_SECRETS_PATTERN  defaults to '**/application.secrets.env'
    INPUT_SOPS_VERSION     expected sops version (advisory)
    GNUPGHOME              trust store, defaults to ~/.gnupg

Re-encrypt all secrets:

\b
    $ sops-rekey rekey

List the files and keys a run would use:

\b
    $ sops-rekey ls --pattern '**/application.secrets.env'
    $ sops-rekey keys
"""

__version__ = '1.0.0'
