"""Scripts evaluated inside the browser."""

# Served for the synthetic origin so the application gets a real host document
BLANK_DOCUMENT = "<!DOCTYPE html><html><head></head><body></body></html>"

# Installs the render runtime on window. Evaluated once per boot.
RUNTIME = r"""
(function () {
    // adapted from ember-cli-fastboot's fastboot-headers.js
    class FastBootHeaders {
        headers = {};

        constructor(headers) {
            headers = headers || {};
            for (let header in headers) {
                let value = headers[header];
                if (typeof value === 'string') {
                    value = [value];
                }
                this.headers[header.toLowerCase()] = value;
            }
        }

        append(header, value) {
            header = header.toLowerCase();
            if (!this.has(header)) {
                this.headers[header] = [];
            }
            this.headers[header].push(value);
        }

        delete(header) {
            delete this.headers[header.toLowerCase()];
        }

        entries() {
            let entries = [];
            for (let key in this.headers) {
                for (let value of this.headers[key]) {
                    entries.push([key, value]);
                }
            }
            return entries[Symbol.iterator]();
        }

        get(header) {
            return this.getAll(header)[0] || null;
        }

        getAll(header) {
            return this.headers[header.toLowerCase()] || [];
        }

        has(header) {
            return this.headers[header.toLowerCase()] !== undefined;
        }

        keys() {
            let keys = [];
            for (let key in this.headers) {
                for (let index = 0; index < this.headers[key].length; ++index) {
                    keys.push(key);
                }
            }
            return keys[Symbol.iterator]();
        }

        set(header, value) {
            this.headers[header.toLowerCase()] = [value];
        }

        values() {
            let values = [];
            for (let key in this.headers) {
                values.push(...this.headers[key]);
            }
            return values[Symbol.iterator]();
        }

        unknownProperty() {
            throw new Error('FastBootHeaders does not support "unknownProperty" operations.');
        }
    }

    function removeAttributes(node) {
        while (node.attributes.length > 0) {
            node.removeAttribute(node.attributes[0].name);
        }
    }

    function attributes(node) {
        return Object.fromEntries(Array.from(node.attributes).map((a) => [a.name, a.value]));
    }

    window.$tasks = {};

    window.$setup = function (name, config) {
        window.FastBoot = {
            config(_name) {
                if (_name !== name) {
                    throw new Error('name mismatch: ' + _name);
                }
                return config;
            },
            require(module) {
                if (module === 'crypto') {
                    return window.crypto;
                }
                if (module === 'node-fetch') {
                    return {
                        'default': window.fetch,
                        FormData: window.FormData,
                        Headers: window.Headers,
                        Request: window.Request,
                        Response: window.Response,
                        FetchError: window.FetchError,
                        AbortError: window.AbortError,
                        isRedirect: window.isRedirect,
                        Blob: window.Blob,
                        File: window.File,
                        fileFromSync: window.fileFromSync,
                        fileFrom: window.fileFrom,
                        blobFromSync: window.blobFromSync,
                        blobFrom: window.blobFrom,
                    };
                }
                if (module === 'abortcontroller-polyfill/dist/cjs-ponyfill') {
                    return {
                        AbortController: window.AbortController,
                        AbortSignal: window.AbortSignal,
                        fetch: window.fetch,
                    };
                }
                return window.require(...arguments);
            },
        };
    };

    window.$boot = async function () {
        window.$app = window.require('~fastboot/app-factory').default();
        await window.$app.boot();
    };

    window.$render = async function (url, request) {
        if (window.$running) {
            throw new Error('instance running');
        }

        try {
            window.$running = true;

            if (window.$instance) {
                await window.$instance.destroy();
                window.$instance = null;
            }

            document.head.innerHTML = '';
            document.body.innerHTML = '';
            removeAttributes(document.head);
            removeAttributes(document.body);
            removeAttributes(document.documentElement);

            window.$instance = await window.$app.buildInstance();

            request.headers = new FastBootHeaders(request.headers);
            request.host = () => request.headers.get('host');

            const info = {
                request: request,
                response: {
                    headers: new FastBootHeaders({}),
                    statusCode: 200,
                },
                metadata: {},
                deferredPromise: Promise.resolve(),
                deferRendering(promise) {
                    this.deferredPromise = promise;
                },
            };

            window.$instance.register('info:-fastboot', info, { instantiate: false });

            const options = {
                document: window.document,
                isBrowser: true,
                isInteractive: false,
                rootElement: window.document.body,
            };

            await window.$instance.boot(options);
            await window.$instance.visit(url, options);
            await info.deferredPromise;
        } finally {
            window.$running = false;
        }
    };

    window.$capture = function () {
        return {
            headContent: document.head.innerHTML,
            bodyContent: document.body.innerHTML,
            htmlAttributes: attributes(document.documentElement),
            headAttributes: attributes(document.head),
            bodyAttributes: attributes(document.body),
        };
    };
})();
"""

# Runs a source file in global scope, like a classic script tag
EXECUTE = "(source) => { (0, eval)(source); }"

# Calls a synchronous runtime function
CALL = "([name, args]) => window[name](...args)"

# Starts an asynchronous runtime function as a task without awaiting it
START_TASK = """([id, name, args]) => {
    const task = { done: false, error: null };
    window.$tasks[id] = task;
    Promise.resolve()
        .then(() => window[name](...args))
        .then(
            () => {},
            (err) => { task.error = String((err && err.stack) || err); },
        )
        .finally(() => { task.done = true; });
}"""

TASK_DONE = "(id) => Boolean(window.$tasks && window.$tasks[id] && window.$tasks[id].done)"

TAKE_TASK = """(id) => {
    const task = window.$tasks[id];
    delete window.$tasks[id];
    return { error: task.error };
}"""

# Round trip that lets pending browser events be dispatched
FLUSH = "() => null"
